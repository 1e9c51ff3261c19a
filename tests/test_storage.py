"""
Tests for the ledger store backends
"""
import asyncio
import pytest
from decimal import Decimal

from bitlend.core.locks import LocalLockManager, build_lock_manager, loan_key
from bitlend.modules.loans.schemas import LoanCreate, LoanStatus, MatchedLoan
from bitlend.modules.stats.schemas import StatsCreate
from bitlend.modules.transactions.schemas import TransactionCreate
from bitlend.modules.users.schemas import UserCreate
from bitlend.store.base import DuplicateRecordError
from bitlend.store.memory import MemoryLedgerStore
from bitlend.store.providers import MemoryStoreProvider, build_store_provider
from bitlend.store.seed import DEMO_EMAIL, seed_demo_data


def request_for(borrower_id: int, amount: str = "0.5") -> LoanCreate:
    return LoanCreate(
        borrower_id=borrower_id,
        amount=Decimal(amount),
        currency="BTC",
        interest_rate=Decimal("6"),
        duration_months=3,
        type="request"
    )


class TestUsers:

    @pytest.mark.unit
    async def test_lookup_by_email_and_wallet(self, store):
        async with store.atomic():
            user = await store.create_user(UserCreate(
                username="Wendy Wallet",
                email="wendy@example.com",
                hashed_password="x",
                wallet_address="0xabc"
            ))

        assert (await store.get_user_by_email("wendy@example.com")).id == user.id
        assert (await store.get_user_by_wallet_address("0xabc")).id == user.id
        assert await store.get_user_by_email("nobody@example.com") is None
        assert await store.get_user(user.id + 100) is None

    @pytest.mark.unit
    async def test_duplicate_email(self, store, borrower):
        with pytest.raises(DuplicateRecordError):
            async with store.atomic():
                await store.create_user(UserCreate(username="Other", email=borrower.email, hashed_password="x"))

        # The failed insert leaves the store usable
        assert (await store.get_user(borrower.id)).email == borrower.email

    @pytest.mark.unit
    async def test_duplicate_stats(self, store, borrower):
        with pytest.raises(DuplicateRecordError):
            async with store.atomic():
                await store.create_stats(StatsCreate(user_id=borrower.id))

    @pytest.mark.unit
    async def test_password_hash_never_serializes(self, borrower):
        assert "hashed_password" not in borrower.model_dump()
        assert "not-a-real-hash" not in repr(borrower)

    @pytest.mark.unit
    async def test_balance_cannot_go_negative(self, store, borrower):
        async with store.atomic():
            refused = await store.adjust_user_balance(borrower.id, "BTC", Decimal("-0.46"))
            emptied = await store.adjust_user_balance(borrower.id, "BTC", Decimal("-0.45"))

        assert refused is None
        assert emptied.btc_balance == 0

    @pytest.mark.unit
    async def test_balance_for_unknown_user_or_currency(self, store, borrower):
        async with store.atomic():
            assert await store.adjust_user_balance(999, "BTC", Decimal("1")) is None
            assert await store.adjust_user_balance(borrower.id, "DOGE", Decimal("1")) is None


class TestLoans:

    @pytest.mark.unit
    async def test_claim_is_compare_and_swap(self, store, borrower, lender, outsider):
        async with store.atomic():
            loan = await store.create_loan(request_for(borrower.id))

        async with store.atomic():
            first = await store.claim_loan(loan.id, lender.id, borrower.id)
            second = await store.claim_loan(loan.id, outsider.id, borrower.id)

        assert isinstance(first, MatchedLoan)
        assert first.status == LoanStatus.ACTIVE
        assert second is None
        assert (await store.get_loan(loan.id)).lender_id == lender.id

    @pytest.mark.unit
    async def test_marketplace_and_user_queries(self, store, borrower, lender):
        async with store.atomic():
            first = await store.create_loan(request_for(borrower.id))
            second = await store.create_loan(request_for(borrower.id, "0.7"))
            await store.claim_loan(first.id, lender.id, borrower.id)

        assert [loan.id for loan in await store.get_marketplace_loans()] == [second.id]
        assert [loan.id for loan in await store.get_active_loans(borrower.id)] == [first.id]
        assert [loan.id for loan in await store.get_active_loans(lender.id)] == [first.id]
        assert [loan.id for loan in await store.get_user_loans(borrower.id)] == [first.id, second.id]

    @pytest.mark.unit
    async def test_status_update_and_repayment(self, store, borrower, lender):
        async with store.atomic():
            loan = await store.create_loan(request_for(borrower.id))
            await store.claim_loan(loan.id, lender.id, borrower.id)
            repaid = await store.record_repayment(loan.id, Decimal("0"), Decimal("0.2"))
            stale = await store.record_repayment(loan.id, Decimal("0"), Decimal("0.2"))
            completed = await store.update_loan_status(loan.id, LoanStatus.COMPLETED.value)

        assert repaid.amount_repaid == Decimal("0.2")
        assert stale is None
        assert completed.status == LoanStatus.COMPLETED
        assert await store.update_loan_status(999, LoanStatus.COMPLETED.value) is None

    @pytest.mark.unit
    async def test_repayment_needs_an_active_loan(self, store, borrower):
        async with store.atomic():
            loan = await store.create_loan(request_for(borrower.id))

        async with store.atomic():
            assert await store.record_repayment(loan.id, Decimal("0"), Decimal("0.1")) is None
            assert await store.record_repayment(999, Decimal("0"), Decimal("0.1")) is None

        assert (await store.get_loan(loan.id)).amount_repaid == 0


class TestAtomic:

    @pytest.mark.unit
    async def test_failed_block_writes_nothing(self, store, borrower, lender):
        with pytest.raises(RuntimeError):
            async with store.atomic():
                loan = await store.create_loan(request_for(borrower.id))
                await store.claim_loan(loan.id, lender.id, borrower.id)
                await store.create_transaction(TransactionCreate(
                    user_id=lender.id,
                    loan_id=loan.id,
                    amount=Decimal("0.5"),
                    currency="BTC",
                    type="disbursement",
                    description="Loan disbursement"
                ))
                raise RuntimeError("boom")

        assert await store.get_user_loans(borrower.id) == []
        assert await store.get_user_transactions(lender.id) == []

    @pytest.mark.unit
    async def test_transactions_are_newest_first(self, store, borrower):
        async with store.atomic():
            created = [
                await store.create_transaction(TransactionCreate(
                    user_id=borrower.id,
                    amount=Decimal(amount),
                    currency="BTC",
                    type="deposit",
                    description="BTC Deposit"
                ))
                for amount in ("0.1", "0.2", "0.3")
            ]

        listed = await store.get_user_transactions(borrower.id)
        assert [txn.id for txn in listed] == [txn.id for txn in reversed(created)]
        assert (await store.get_transaction(created[0].id)).amount == Decimal("0.1")


class TestLocks:

    @pytest.mark.unit
    async def test_same_key_is_serialized(self):
        locks = LocalLockManager()
        order = []

        async def worker(name):
            async with locks.hold(loan_key(1)):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.unit
    async def test_idle_locks_are_released(self):
        locks = LocalLockManager()

        async with locks.hold(loan_key(1)):
            pass

        assert locks._locks == {}

    @pytest.mark.unit
    def test_unknown_lock_backend(self):
        class Config:
            LOCK_BACKEND = "zookeeper"

        with pytest.raises(ValueError):
            build_lock_manager(Config())


class TestProvidersAndSeed:

    @pytest.mark.unit
    async def test_memory_provider_shares_one_store(self):
        provider = MemoryStoreProvider()

        async with provider.session() as first:
            pass
        async with provider.session() as second:
            pass

        assert first is second

    @pytest.mark.unit
    def test_unknown_backend(self):
        class Config:
            STORAGE_BACKEND = "mongo"

        with pytest.raises(ValueError):
            build_store_provider(Config())

    @pytest.mark.integration
    async def test_seed_demo_data(self):
        store = MemoryLedgerStore()

        await seed_demo_data(store)
        await seed_demo_data(store)  # idempotent

        demo = await store.get_user_by_email(DEMO_EMAIL)
        assert demo.btc_balance == Decimal("0.45")
        stats = await store.get_user_stats(demo.id)
        assert (stats.active_loans, stats.total_lent, stats.total_borrowed) == (0, 0, 0)

        marketplace = await store.get_marketplace_loans()
        assert len(marketplace) == 5
        assert all(loan.status == LoanStatus.PENDING for loan in marketplace)
        deposits = await store.get_user_transactions(demo.id)
        assert [txn.amount for txn in deposits] == [demo.btc_balance]
