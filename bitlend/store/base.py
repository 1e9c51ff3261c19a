"""
Ledger store interface.

The services depend only on ``LedgerStore``; ``MemoryLedgerStore`` and
``SqlLedgerStore`` are interchangeable backings. Every write replaces a whole
record, and ``atomic()`` groups a sequence of writes into one all-or-nothing
unit.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncContextManager, List, Optional

from bitlend.modules.users.schemas import UserCreate, UserRecord
from bitlend.modules.loans.schemas import LoanCreate, LoanRecord
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionRecord
from bitlend.modules.stats.schemas import StatsCreate, StatsRecord


class DuplicateRecordError(Exception):
    """A unique field (email, username, wallet address, stats owner) is taken"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerStore(ABC):
    """Keyed storage for users, loans, transactions and stats"""

    @abstractmethod
    def atomic(self) -> AsyncContextManager[None]:
        """Run the enclosed writes as a single unit"""

    # ============ Users ============

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def get_user_by_wallet_address(self, wallet_address: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def create_user(self, user_in: UserCreate) -> UserRecord:
        """Insert a user; raises DuplicateRecordError on a unique clash"""

    @abstractmethod
    async def adjust_user_balance(self, user_id: int, currency: str, delta: Decimal) -> Optional[UserRecord]:
        """
        Add ``delta`` to the user's balance in ``currency``.

        Returns None, writing nothing, when the user is missing or the
        balance would become negative.
        """

    # ============ Loans ============

    @abstractmethod
    async def get_loan(self, loan_id: int) -> Optional[LoanRecord]:
        ...

    @abstractmethod
    async def get_user_loans(self, user_id: int) -> List[LoanRecord]:
        """Loans where the user is lender or borrower"""

    @abstractmethod
    async def get_active_loans(self, user_id: int) -> List[LoanRecord]:
        ...

    @abstractmethod
    async def get_marketplace_loans(self) -> List[LoanRecord]:
        """Pending loans in insertion order"""

    @abstractmethod
    async def create_loan(self, loan_in: LoanCreate) -> LoanRecord:
        ...

    @abstractmethod
    async def update_loan_status(self, loan_id: int, status: str) -> Optional[LoanRecord]:
        ...

    @abstractmethod
    async def claim_loan(self, loan_id: int, lender_id: int, borrower_id: int) -> Optional[LoanRecord]:
        """
        Compare-and-swap a pending loan to active with both parties set.

        Returns None when the loan is no longer pending, so only one of two
        racing claims can win.
        """

    @abstractmethod
    async def record_repayment(self, loan_id: int, previous: Decimal, amount: Decimal) -> Optional[LoanRecord]:
        """
        Compare-and-swap the amount repaid on an active loan.

        Sets ``amount_repaid = previous + amount`` only while the loan is
        active and still shows ``previous`` repaid. Returns None otherwise, so
        of two repayments checked against the same balance only one lands.
        """

    # ============ Transactions ============

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        ...

    @abstractmethod
    async def get_user_transactions(self, user_id: int) -> List[TransactionRecord]:
        """Newest first"""

    @abstractmethod
    async def create_transaction(self, transaction_in: TransactionCreate) -> TransactionRecord:
        ...

    # ============ Stats ============

    @abstractmethod
    async def get_user_stats(self, user_id: int, for_update: bool = False) -> Optional[StatsRecord]:
        ...

    @abstractmethod
    async def create_stats(self, stats_in: StatsCreate) -> StatsRecord:
        ...

    @abstractmethod
    async def update_stats(self, stats: StatsRecord) -> Optional[StatsRecord]:
        ...
