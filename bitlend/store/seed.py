"""Demo data for the in-memory store (SEED_DEMO_DATA=true)."""
from decimal import Decimal
import logging

from bitlend.core.security import get_password_hash
from bitlend.modules.loans.schemas import LoanCreate, LoanType
from bitlend.modules.stats.schemas import StatsCreate
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionType
from bitlend.modules.users.schemas import UserCreate
from bitlend.store.base import LedgerStore

logger = logging.getLogger(__name__)

DEMO_EMAIL = "john@example.com"
DEMO_PASSWORD = "password123"

COUNTERPARTS = [
    ("Alice Moreau", "alice@example.com", 4.6),
    ("Kenji Sato", "kenji@example.com", 4.9),
    ("Priya Nair", "priya@example.com", 4.4),
    ("Marco Rossi", "marco@example.com", 4.7),
]

# (counterpart index or None for the demo user, type, amount, interest, months, collateral)
MARKETPLACE_LOANS = [
    (None, LoanType.OFFER, "1.2", "4.8", 12, True),
    (0, LoanType.REQUEST, "0.35", "7.2", 4, True),
    (1, LoanType.REQUEST, "0.65", "6.5", 6, True),
    (2, LoanType.OFFER, "1.0", "5.0", 12, True),
    (3, LoanType.OFFER, "0.5", "4.8", 3, False),
]


async def seed_demo_data(store: LedgerStore) -> None:
    """Create the demo user, a few counterparts and a pending marketplace"""
    if await store.get_user_by_email(DEMO_EMAIL):
        return

    async with store.atomic():
        demo = await store.create_user(UserCreate(
            username="John Doe",
            email=DEMO_EMAIL,
            hashed_password=get_password_hash(DEMO_PASSWORD),
            wallet_address="0x71C...4E92",
            avatar_initials="JD",
            rating=4.8,
            btc_balance=Decimal("0.45")
        ))
        # the marketplace loans below are all pending, so the dashboard starts empty
        await store.create_stats(StatsCreate(user_id=demo.id))

        counterparts = []
        for username, email, rating in COUNTERPARTS:
            user = await store.create_user(UserCreate(
                username=username,
                email=email,
                hashed_password=get_password_hash(DEMO_PASSWORD),
                avatar_initials="".join(part[0] for part in username.split()),
                rating=rating
            ))
            await store.create_stats(StatsCreate(user_id=user.id))
            counterparts.append(user)

        for owner, loan_type, amount, interest, months, collateral in MARKETPLACE_LOANS:
            owner_id = demo.id if owner is None else counterparts[owner].id
            party = "borrower_id" if loan_type == LoanType.REQUEST else "lender_id"
            await store.create_loan(LoanCreate(
                amount=Decimal(amount),
                currency="BTC",
                interest_rate=Decimal(interest),
                duration_months=months,
                has_collateral=collateral,
                type=loan_type.value,
                **{party: owner_id}
            ))

        await store.create_transaction(TransactionCreate(
            user_id=demo.id,
            amount=Decimal("0.45"),
            currency="BTC",
            type=TransactionType.DEPOSIT.value,
            description="BTC Deposit",
            tx_hash="0x789",
            usd_value=Decimal("15750.00")
        ))

    logger.info(f"Seeded demo data: {len(COUNTERPARTS) + 1} users, {len(MARKETPLACE_LOANS)} marketplace loans")
