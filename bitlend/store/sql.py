"""Ledger store on an SQLAlchemy AsyncSession."""
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, update, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bitlend.modules.users.models import User
from bitlend.modules.loans.models import Loan
from bitlend.modules.transactions.models import Transaction
from bitlend.modules.stats.models import UserStats
from bitlend.modules.users.schemas import UserCreate, UserRecord, balance_field
from bitlend.modules.loans.schemas import LoanCreate, LoanRecord, LoanStatus, parse_loan
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionRecord
from bitlend.modules.stats.schemas import StatsCreate, StatsRecord
from bitlend.store.base import DuplicateRecordError, LedgerStore, utcnow


class SqlLedgerStore(LedgerStore):
    """
    Relational store.

    Writes are flushed immediately and committed when the outermost
    ``atomic()`` block exits cleanly; any exception rolls the session back.
    Loan activation is a conditional UPDATE on ``status = 'pending'``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except BaseException:
            await self.session.rollback()
            raise

    async def _scalar(self, query):
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _scalars(self, query) -> list:
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    # ============ Users ============

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        user = await self._scalar(select(User).where(User.id == user_id))
        return UserRecord.model_validate(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        user = await self._scalar(select(User).where(User.email == email))
        return UserRecord.model_validate(user) if user else None

    async def get_user_by_wallet_address(self, wallet_address: str) -> Optional[UserRecord]:
        user = await self._scalar(select(User).where(User.wallet_address == wallet_address))
        return UserRecord.model_validate(user) if user else None

    async def create_user(self, user_in: UserCreate) -> UserRecord:
        user = User(created_at=utcnow(), **user_in.model_dump())
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateRecordError(str(exc.orig)) from exc
        return UserRecord.model_validate(user)

    async def adjust_user_balance(self, user_id: int, currency: str, delta: Decimal) -> Optional[UserRecord]:
        field = balance_field(currency)
        if field is None:
            return None

        column = getattr(User, field)
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, column + delta >= 0)
            .values({field: column + delta})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_user(user_id)

    # ============ Loans ============

    async def get_loan(self, loan_id: int) -> Optional[LoanRecord]:
        loan = await self._scalar(select(Loan).where(Loan.id == loan_id))
        return parse_loan(loan) if loan else None

    async def get_user_loans(self, user_id: int) -> List[LoanRecord]:
        loans = await self._scalars(
            select(Loan)
            .where(or_(Loan.borrower_id == user_id, Loan.lender_id == user_id))
            .order_by(Loan.id)
        )
        return [parse_loan(loan) for loan in loans]

    async def get_active_loans(self, user_id: int) -> List[LoanRecord]:
        loans = await self._scalars(
            select(Loan)
            .where(
                and_(
                    or_(Loan.borrower_id == user_id, Loan.lender_id == user_id),
                    Loan.status == LoanStatus.ACTIVE.value
                )
            )
            .order_by(Loan.id)
        )
        return [parse_loan(loan) for loan in loans]

    async def get_marketplace_loans(self) -> List[LoanRecord]:
        loans = await self._scalars(
            select(Loan).where(Loan.status == LoanStatus.PENDING.value).order_by(Loan.id)
        )
        return [parse_loan(loan) for loan in loans]

    async def create_loan(self, loan_in: LoanCreate) -> LoanRecord:
        now = utcnow()
        loan = Loan(
            **loan_in.model_dump(),
            status=LoanStatus.PENDING.value,
            amount_repaid=Decimal("0"),
            created_at=now,
            updated_at=now
        )
        self.session.add(loan)
        await self.session.flush()
        return parse_loan(loan)

    async def _update_loan(self, loan_id: int, *conditions, **values) -> Optional[LoanRecord]:
        result = await self.session.execute(
            update(Loan)
            .where(Loan.id == loan_id, *conditions)
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_loan(loan_id)

    async def update_loan_status(self, loan_id: int, status: str) -> Optional[LoanRecord]:
        return await self._update_loan(loan_id, status=status)

    async def claim_loan(self, loan_id: int, lender_id: int, borrower_id: int) -> Optional[LoanRecord]:
        return await self._update_loan(
            loan_id,
            Loan.status == LoanStatus.PENDING.value,
            or_(Loan.lender_id.is_(None), Loan.borrower_id.is_(None)),
            status=LoanStatus.ACTIVE.value,
            lender_id=lender_id,
            borrower_id=borrower_id
        )

    async def record_repayment(self, loan_id: int, previous: Decimal, amount: Decimal) -> Optional[LoanRecord]:
        return await self._update_loan(
            loan_id,
            Loan.status == LoanStatus.ACTIVE.value,
            Loan.amount_repaid == previous,
            amount_repaid=previous + amount
        )

    # ============ Transactions ============

    async def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        txn = await self._scalar(select(Transaction).where(Transaction.id == transaction_id))
        return TransactionRecord.model_validate(txn) if txn else None

    async def get_user_transactions(self, user_id: int) -> List[TransactionRecord]:
        transactions = await self._scalars(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return [TransactionRecord.model_validate(txn) for txn in transactions]

    async def create_transaction(self, transaction_in: TransactionCreate) -> TransactionRecord:
        txn = Transaction(created_at=utcnow(), **transaction_in.model_dump())
        self.session.add(txn)
        await self.session.flush()
        return TransactionRecord.model_validate(txn)

    # ============ Stats ============

    async def get_user_stats(self, user_id: int, for_update: bool = False) -> Optional[StatsRecord]:
        query = select(UserStats).where(UserStats.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        stats = await self._scalar(query)
        return StatsRecord.model_validate(stats) if stats else None

    async def create_stats(self, stats_in: StatsCreate) -> StatsRecord:
        stats = UserStats(**stats_in.model_dump())
        self.session.add(stats)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateRecordError(str(exc.orig)) from exc
        return StatsRecord.model_validate(stats)

    async def update_stats(self, stats: StatsRecord) -> Optional[StatsRecord]:
        result = await self.session.execute(
            update(UserStats)
            .where(UserStats.user_id == stats.user_id)
            .values(
                total_borrowed=stats.total_borrowed,
                total_lent=stats.total_lent,
                active_loans=stats.active_loans,
                interest_earned=stats.interest_earned
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_user_stats(stats.user_id)
