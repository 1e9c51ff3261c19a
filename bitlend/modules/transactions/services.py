from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
import logging
import time

from bitlend.core.config import settings
from bitlend.core.exceptions import NotFoundError, ValidationError
from bitlend.core.locks import LocalLockManager, user_key
from bitlend.core.security import generate_reference_suffix
from bitlend.modules.loans.utils import Number, quantize_amount, to_decimal
from bitlend.modules.transactions.schemas import TransactionCreate, TransactionRecord, TransactionType
from bitlend.modules.users.schemas import balance_field
from bitlend.modules.valuation.services import ValuationSource, build_valuation
from bitlend.store.base import LedgerStore

logger = logging.getLogger(__name__)


def validate_amount(amount: Number) -> Decimal:
    """Positive, finite amount rounded to the ledger precision"""
    try:
        value = to_decimal(amount)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {amount}")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than 0")
    value = quantize_amount(value)
    if value <= 0:
        raise ValidationError("Amount is below the smallest supported unit")
    return value


def validate_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if code not in settings.supported_currencies_list or balance_field(code) is None:
        raise ValidationError(f"Unsupported currency: {currency}")
    return code


def resolve_reference(tx_hash: Optional[str], action: str, required: bool = False) -> Tuple[str, bool]:
    """
    Return the external reference to store and whether it is a placeholder.

    Without a hash a ``mock_<action>_<ms>_<random>`` placeholder is used,
    unless references are required.
    """
    if tx_hash and tx_hash.strip():
        return tx_hash.strip(), False

    if required:
        raise ValidationError(f"A transaction hash is required for {action}")

    reference = f"mock_{action}_{int(time.time() * 1000)}_{generate_reference_suffix()}"
    logger.warning(f"No transaction hash supplied for {action}, recorded placeholder {reference}")
    return reference, True


class TransactionService:
    """Custodial balance movements: deposits and withdrawals"""

    def __init__(
        self,
        store: LedgerStore,
        valuation: Optional[ValuationSource] = None,
        locks=None,
        require_reference: Optional[bool] = None
    ):
        self.store = store
        self.valuation = valuation or build_valuation()
        self.locks = locks or LocalLockManager()
        if require_reference is None:
            require_reference = settings.REQUIRE_TX_REFERENCE
        self.require_reference = require_reference

    async def deposit(
        self,
        user_id: int,
        amount: Number,
        currency: str = "BTC",
        tx_hash: Optional[str] = None
    ) -> TransactionRecord:
        """Credit the user's balance and record a deposit"""
        amount = validate_amount(amount)
        currency = validate_currency(currency)
        reference, placeholder = resolve_reference(tx_hash, "deposit", self.require_reference)

        async with self.locks.hold(user_key(user_id)):
            async with self.store.atomic():
                user = await self.store.adjust_user_balance(user_id, currency, amount)
                if user is None:
                    raise NotFoundError(f"User {user_id} not found")

                transaction = await self.store.create_transaction(TransactionCreate(
                    user_id=user_id,
                    amount=amount,
                    currency=currency,
                    type=TransactionType.DEPOSIT.value,
                    description=f"{currency} Deposit",
                    tx_hash=reference,
                    reference_placeholder=placeholder,
                    usd_value=self.valuation.to_reporting_value(amount, currency)
                ))

        logger.info(
            f"Deposit of {amount} {currency} for user {user_id}, "
            f"new balance {user.balance_for(currency)}"
        )
        return transaction

    async def withdraw(
        self,
        user_id: int,
        amount: Number,
        currency: str = "BTC",
        tx_hash: Optional[str] = None
    ) -> TransactionRecord:
        """Debit the user's balance; the balance may not go negative"""
        amount = validate_amount(amount)
        currency = validate_currency(currency)
        reference, placeholder = resolve_reference(tx_hash, "withdrawal", self.require_reference)

        async with self.locks.hold(user_key(user_id)):
            async with self.store.atomic():
                if await self.store.get_user(user_id) is None:
                    raise NotFoundError(f"User {user_id} not found")

                user = await self.store.adjust_user_balance(user_id, currency, -amount)
                if user is None:
                    raise ValidationError(f"Insufficient {currency} balance")

                transaction = await self.store.create_transaction(TransactionCreate(
                    user_id=user_id,
                    amount=amount,
                    currency=currency,
                    type=TransactionType.WITHDRAWAL.value,
                    description=f"{currency} Withdrawal",
                    tx_hash=reference,
                    reference_placeholder=placeholder,
                    usd_value=self.valuation.to_reporting_value(amount, currency)
                ))

        logger.info(
            f"Withdrawal of {amount} {currency} for user {user_id}, "
            f"new balance {user.balance_for(currency)}"
        )
        return transaction

    async def get_user_transactions(self, user_id: int) -> List[TransactionRecord]:
        """Get a user's transactions, newest first"""
        return await self.store.get_user_transactions(user_id)
