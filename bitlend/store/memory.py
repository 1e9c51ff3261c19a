"""In-process ledger store kept in dictionaries; used for tests and demos."""
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional
import asyncio

from bitlend.modules.users.schemas import UserCreate, UserRecord, balance_field
from bitlend.modules.loans.schemas import LoanCreate, LoanRecord, LoanStatus, parse_loan
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionRecord
from bitlend.modules.stats.schemas import StatsCreate, StatsRecord
from bitlend.store.base import DuplicateRecordError, LedgerStore, utcnow


class MemoryLedgerStore(LedgerStore):
    """
    Dictionary-backed store.

    ``atomic()`` holds a store-wide lock and restores a snapshot of every
    collection if the enclosed block raises. Records are immutable pydantic
    models, so shallow copies of the collections are enough for a snapshot.
    """

    def __init__(self):
        self._users: Dict[int, UserRecord] = {}
        self._loans: Dict[int, LoanRecord] = {}
        self._transactions: Dict[int, TransactionRecord] = {}
        self._stats: Dict[int, StatsRecord] = {}  # keyed by user_id
        self._next_ids = {"users": 1, "loans": 1, "transactions": 1, "stats": 1}
        self._lock = asyncio.Lock()

    def _next_id(self, collection: str) -> int:
        value = self._next_ids[collection]
        self._next_ids[collection] = value + 1
        return value

    def _snapshot(self):
        return (
            dict(self._users),
            dict(self._loans),
            dict(self._transactions),
            dict(self._stats),
            dict(self._next_ids),
        )

    def _restore(self, snapshot) -> None:
        self._users, self._loans, self._transactions, self._stats, self._next_ids = snapshot

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise

    # ============ Users ============

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        return next((user for user in self._users.values() if user.email == email), None)

    async def get_user_by_wallet_address(self, wallet_address: str) -> Optional[UserRecord]:
        return next(
            (user for user in self._users.values() if user.wallet_address == wallet_address),
            None
        )

    async def create_user(self, user_in: UserCreate) -> UserRecord:
        for user in self._users.values():
            if user.email == user_in.email:
                raise DuplicateRecordError("email")
            if user.username == user_in.username:
                raise DuplicateRecordError("username")
            if user_in.wallet_address and user.wallet_address == user_in.wallet_address:
                raise DuplicateRecordError("wallet_address")

        user = UserRecord(id=self._next_id("users"), created_at=utcnow(), **user_in.model_dump())
        self._users[user.id] = user
        return user

    async def adjust_user_balance(self, user_id: int, currency: str, delta: Decimal) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        field = balance_field(currency)
        if user is None or field is None:
            return None

        new_balance = getattr(user, field) + delta
        if new_balance < 0:
            return None

        updated = user.model_copy(update={field: new_balance})
        self._users[user_id] = updated
        return updated

    # ============ Loans ============

    async def get_loan(self, loan_id: int) -> Optional[LoanRecord]:
        return self._loans.get(loan_id)

    async def get_user_loans(self, user_id: int) -> List[LoanRecord]:
        return [
            loan for loan in self._loans.values()
            if loan.borrower_id == user_id or loan.lender_id == user_id
        ]

    async def get_active_loans(self, user_id: int) -> List[LoanRecord]:
        return [
            loan for loan in await self.get_user_loans(user_id)
            if loan.status == LoanStatus.ACTIVE
        ]

    async def get_marketplace_loans(self) -> List[LoanRecord]:
        return [loan for loan in self._loans.values() if loan.status == LoanStatus.PENDING]

    async def create_loan(self, loan_in: LoanCreate) -> LoanRecord:
        now = utcnow()
        loan = parse_loan({
            **loan_in.model_dump(),
            "id": self._next_id("loans"),
            "status": LoanStatus.PENDING.value,
            "amount_repaid": Decimal("0"),
            "created_at": now,
            "updated_at": now,
        })
        self._loans[loan.id] = loan
        return loan

    def _replace_loan(self, loan: LoanRecord, **changes) -> LoanRecord:
        data = loan.model_dump(exclude={"total_repayment", "outstanding_balance"})
        data.update(changes, updated_at=utcnow())
        updated = parse_loan(data)
        self._loans[updated.id] = updated
        return updated

    async def update_loan_status(self, loan_id: int, status: str) -> Optional[LoanRecord]:
        loan = self._loans.get(loan_id)
        if loan is None:
            return None
        return self._replace_loan(loan, status=status)

    async def claim_loan(self, loan_id: int, lender_id: int, borrower_id: int) -> Optional[LoanRecord]:
        loan = self._loans.get(loan_id)
        if loan is None or loan.status != LoanStatus.PENDING:
            return None
        return self._replace_loan(
            loan,
            status=LoanStatus.ACTIVE.value,
            lender_id=lender_id,
            borrower_id=borrower_id
        )

    async def record_repayment(self, loan_id: int, previous: Decimal, amount: Decimal) -> Optional[LoanRecord]:
        loan = self._loans.get(loan_id)
        if loan is None or loan.status != LoanStatus.ACTIVE or loan.amount_repaid != previous:
            return None
        return self._replace_loan(loan, amount_repaid=previous + amount)

    # ============ Transactions ============

    async def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        return self._transactions.get(transaction_id)

    async def get_user_transactions(self, user_id: int) -> List[TransactionRecord]:
        transactions = [txn for txn in self._transactions.values() if txn.user_id == user_id]
        return sorted(transactions, key=lambda txn: (txn.created_at, txn.id), reverse=True)

    async def create_transaction(self, transaction_in: TransactionCreate) -> TransactionRecord:
        transaction = TransactionRecord(
            id=self._next_id("transactions"),
            created_at=utcnow(),
            **transaction_in.model_dump()
        )
        self._transactions[transaction.id] = transaction
        return transaction

    # ============ Stats ============

    async def get_user_stats(self, user_id: int, for_update: bool = False) -> Optional[StatsRecord]:
        return self._stats.get(user_id)

    async def create_stats(self, stats_in: StatsCreate) -> StatsRecord:
        if stats_in.user_id in self._stats:
            raise DuplicateRecordError("stats")
        stats = StatsRecord(id=self._next_id("stats"), **stats_in.model_dump())
        self._stats[stats.user_id] = stats
        return stats

    async def update_stats(self, stats: StatsRecord) -> Optional[StatsRecord]:
        if stats.user_id not in self._stats:
            return None
        self._stats[stats.user_id] = stats
        return stats
