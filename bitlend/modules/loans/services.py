"""
Loan lifecycle: creation, matching and repayment.

Every mutation takes the per-loan lock and runs inside ``store.atomic()``,
so the status check, the loan write, the stats deltas and the audit
transaction either all happen or none do. Activation is also a
compare-and-swap in the store, which keeps a second acceptance from
succeeding even across processes sharing a database.
"""
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union
import logging

from bitlend.core.config import settings
from bitlend.core.exceptions import (
    AuthorizationError, NotFoundError, StateError, ValidationError
)
from bitlend.core.locks import LocalLockManager, loan_key
from bitlend.modules.loans.schemas import (
    LoanCreate, LoanRecord, LoanRole, LoanStatus, LoanType, PendingOffer, PendingRequest
)
from bitlend.modules.loans.utils import Number, compute_interest_share, to_decimal
from bitlend.modules.stats.services import AccountingService
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionRecord, TransactionType
from bitlend.modules.transactions.services import resolve_reference, validate_amount, validate_currency
from bitlend.modules.valuation.services import ValuationSource, build_valuation
from bitlend.store.base import LedgerStore

logger = logging.getLogger(__name__)

INTEREST_QUANTUM = Decimal("0.0001")


class LoanService:
    """Loan lifecycle engine"""

    def __init__(
        self,
        store: LedgerStore,
        accounting: Optional[AccountingService] = None,
        valuation: Optional[ValuationSource] = None,
        locks=None,
        require_reference: Optional[bool] = None
    ):
        self.store = store
        self.accounting = accounting or AccountingService(store)
        self.valuation = valuation or build_valuation()
        self.locks = locks or LocalLockManager()
        if require_reference is None:
            require_reference = settings.REQUIRE_TX_REFERENCE
        self.require_reference = require_reference

    # ============ Validation ============

    @staticmethod
    def _validate_interest(interest_rate: Number) -> Decimal:
        try:
            value = to_decimal(interest_rate)
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid interest rate: {interest_rate}")
        if not value.is_finite() or value < 0 or value > 100:
            raise ValidationError("Interest rate must be between 0 and 100")
        return value.quantize(INTEREST_QUANTUM)

    @staticmethod
    def _validate_duration(duration_months: int) -> int:
        if isinstance(duration_months, bool) or not isinstance(duration_months, int):
            raise ValidationError("Duration must be a whole number of months")
        if duration_months < 1:
            raise ValidationError("Duration must be at least 1 month")
        return duration_months

    @staticmethod
    def _validate_role(role: Union[LoanRole, str]) -> LoanRole:
        try:
            return LoanRole(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}")

    # ============ Lifecycle ============

    async def create_loan(
        self,
        initiator_id: int,
        role: Union[LoanRole, str],
        amount: Number,
        interest_rate: Number,
        duration_months: int,
        has_collateral: bool = False,
        currency: str = "BTC"
    ) -> LoanRecord:
        """
        Open a pending loan.

        A borrower opens a request that waits for a lender; a lender opens an
        offer that waits for a borrower. Stats are untouched until a match.
        """
        role = self._validate_role(role)
        amount = validate_amount(amount)
        interest_rate = self._validate_interest(interest_rate)
        duration_months = self._validate_duration(duration_months)
        currency = validate_currency(currency)

        if role == LoanRole.BORROWER:
            parties = {"borrower_id": initiator_id, "type": LoanType.REQUEST.value}
        else:
            parties = {"lender_id": initiator_id, "type": LoanType.OFFER.value}

        async with self.store.atomic():
            if await self.store.get_user(initiator_id) is None:
                raise NotFoundError(f"User {initiator_id} not found")

            loan = await self.store.create_loan(LoanCreate(
                amount=amount,
                currency=currency,
                interest_rate=interest_rate,
                duration_months=duration_months,
                has_collateral=bool(has_collateral),
                **parties
            ))

        logger.info(
            f"Loan {loan.id} created: {loan.type} of {amount} {currency} "
            f"at {interest_rate}% for {duration_months} months by user {initiator_id}"
        )
        return loan

    async def accept_loan(self, loan_id: int, accepter_id: int, tx_hash: Optional[str] = None) -> LoanRecord:
        """
        Fill the open role on a pending loan and activate it.

        The disbursement is always attributed to the lender, whichever side
        initiated the match.
        """
        reference, placeholder = resolve_reference(tx_hash, "accept", self.require_reference)

        async with self.locks.hold(loan_key(loan_id)):
            async with self.store.atomic():
                loan = await self.store.get_loan(loan_id)
                if loan is None:
                    raise NotFoundError(f"Loan {loan_id} not found")
                if loan.status != LoanStatus.PENDING:
                    raise StateError(f"Loan {loan_id} is not pending")
                if await self.store.get_user(accepter_id) is None:
                    raise NotFoundError(f"User {accepter_id} not found")

                if isinstance(loan, PendingRequest) and loan.borrower_id != accepter_id:
                    lender_id, borrower_id = accepter_id, loan.borrower_id
                elif isinstance(loan, PendingOffer) and loan.lender_id != accepter_id:
                    lender_id, borrower_id = loan.lender_id, accepter_id
                else:
                    raise StateError("Cannot accept this loan")

                activated = await self.store.claim_loan(loan_id, lender_id, borrower_id)
                if activated is None:
                    raise StateError(f"Loan {loan_id} is not pending")

                await self.accounting.record_match(lender_id, borrower_id, activated.amount)
                await self.store.create_transaction(TransactionCreate(
                    user_id=lender_id,
                    loan_id=loan_id,
                    amount=activated.amount,
                    currency=activated.currency,
                    type=TransactionType.DISBURSEMENT.value,
                    description=f"Loan #{loan_id} disbursement",
                    tx_hash=reference,
                    reference_placeholder=placeholder,
                    usd_value=self.valuation.to_reporting_value(activated.amount, activated.currency)
                ))

        logger.info(
            f"Loan {loan_id} accepted by user {accepter_id}: "
            f"lender {lender_id}, borrower {borrower_id}"
        )
        return activated

    async def repay_loan(
        self,
        loan_id: int,
        payer_id: int,
        amount: Number,
        tx_hash: Optional[str] = None,
        currency: Optional[str] = None
    ) -> TransactionRecord:
        """
        Record a repayment from the borrower.

        The lender is credited ``amount * interest_rate / 100`` of interest.
        Once the cumulative repayments reach the total owed the loan is
        completed and stops counting as active for both parties.
        """
        amount = validate_amount(amount)
        reference, placeholder = resolve_reference(tx_hash, "repay", self.require_reference)
        completed = False

        async with self.locks.hold(loan_key(loan_id)):
            async with self.store.atomic():
                loan = await self.store.get_loan(loan_id)
                if loan is None:
                    raise NotFoundError(f"Loan {loan_id} not found")
                if loan.status != LoanStatus.ACTIVE:
                    raise StateError(f"Loan {loan_id} is not active")
                if payer_id != loan.borrower_id:
                    raise AuthorizationError("Only the borrower can repay this loan")
                if currency is not None and currency.strip().upper() != loan.currency:
                    raise ValidationError(f"Repayments for loan {loan_id} must be made in {loan.currency}")

                outstanding = loan.outstanding_balance
                if amount > outstanding:
                    raise ValidationError(
                        f"Repayment of {amount} exceeds the outstanding balance of {outstanding} {loan.currency}"
                    )

                repaid = await self.store.record_repayment(loan_id, loan.amount_repaid, amount)
                if repaid is None:
                    raise StateError(f"Loan {loan_id} changed while the repayment was recorded, try again")

                transaction = await self.store.create_transaction(TransactionCreate(
                    user_id=payer_id,
                    loan_id=loan_id,
                    amount=amount,
                    currency=loan.currency,
                    type=TransactionType.REPAYMENT.value,
                    description=f"Loan #{loan_id} repayment",
                    tx_hash=reference,
                    reference_placeholder=placeholder,
                    usd_value=self.valuation.to_reporting_value(amount, loan.currency)
                ))

                interest = compute_interest_share(amount, loan.interest_rate)
                await self.accounting.record_interest(loan.lender_id, interest)

                if repaid.amount_repaid >= repaid.total_repayment:
                    await self.store.update_loan_status(loan_id, LoanStatus.COMPLETED.value)
                    await self.accounting.record_completion(loan.lender_id, loan.borrower_id)
                    completed = True

        logger.info(f"Repayment of {amount} {loan.currency} on loan {loan_id} by user {payer_id}")
        if completed:
            logger.info(f"Loan {loan_id} fully repaid and completed")
        return transaction

    # ============ Queries ============

    async def list_marketplace_loans(self) -> List[LoanRecord]:
        """Get all pending loans"""
        return await self.store.get_marketplace_loans()

    async def get_loan(self, loan_id: int) -> LoanRecord:
        loan = await self.store.get_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    async def get_user_loans(self, user_id: int) -> List[LoanRecord]:
        return await self.store.get_user_loans(user_id)

    async def get_active_loans(self, user_id: int) -> List[LoanRecord]:
        return await self.store.get_active_loans(user_id)
