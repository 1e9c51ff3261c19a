"""
Unit tests for Transaction Service
"""
import pytest
from decimal import Decimal

from bitlend.core.exceptions import NotFoundError, ValidationError
from bitlend.modules.transactions.services import (
    TransactionService, resolve_reference, validate_amount, validate_currency
)


class TestReferenceHandling:
    """Tests for external transaction references"""

    @pytest.mark.unit
    def test_supplied_hash_is_kept(self):
        assert resolve_reference(" 0xabc ", "deposit") == ("0xabc", False)

    @pytest.mark.unit
    def test_placeholder_when_missing(self, caplog):
        reference, placeholder = resolve_reference(None, "deposit")

        assert placeholder is True
        assert reference.startswith("mock_deposit_")
        assert "placeholder" in caplog.text

    @pytest.mark.unit
    def test_blank_hash_counts_as_missing(self):
        _, placeholder = resolve_reference("   ", "repay")
        assert placeholder is True

    @pytest.mark.unit
    def test_required_reference_rejects_missing_hash(self):
        with pytest.raises(ValidationError):
            resolve_reference(None, "deposit", required=True)


class TestInputValidation:
    """Tests for amount and currency checks"""

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "NaN", "abc", Decimal("0.000000001")])
    def test_invalid_amounts(self, amount):
        with pytest.raises(ValidationError):
            validate_amount(amount)

    @pytest.mark.unit
    def test_amount_is_rounded_to_satoshi(self):
        assert validate_amount("1.123456789") == Decimal("1.12345679")

    @pytest.mark.unit
    def test_currency_is_normalised(self):
        assert validate_currency(" eth ") == "ETH"

    @pytest.mark.unit
    def test_unsupported_currency(self):
        with pytest.raises(ValidationError):
            validate_currency("USD")


class TestDeposit:
    """Tests for crediting balances"""

    @pytest.mark.unit
    async def test_deposit_credits_balance(self, transaction_service, store, borrower):
        transaction = await transaction_service.deposit(borrower.id, Decimal("1.5"), "BTC", tx_hash="0x789")

        user = await store.get_user(borrower.id)
        assert user.btc_balance == Decimal("1.95")

        assert transaction.type == "deposit"
        assert transaction.amount == Decimal("1.5")
        assert transaction.loan_id is None
        assert transaction.description == "BTC Deposit"
        assert transaction.usd_value == Decimal("52500.00")

        transactions = await store.get_user_transactions(borrower.id)
        assert len(transactions) == 1
        assert transactions[0].id == transaction.id

    @pytest.mark.unit
    async def test_deposit_other_currency(self, transaction_service, store, borrower):
        transaction = await transaction_service.deposit(borrower.id, Decimal("3"), "sol")

        user = await store.get_user(borrower.id)
        assert user.sol_balance == Decimal("3")
        assert user.btc_balance == Decimal("0.45")
        assert transaction.currency == "SOL"
        assert transaction.usd_value == Decimal("300.00")

    @pytest.mark.unit
    async def test_deposit_without_hash_is_flagged(self, transaction_service, borrower):
        transaction = await transaction_service.deposit(borrower.id, Decimal("0.1"))

        assert transaction.reference_placeholder is True
        assert transaction.tx_hash.startswith("mock_deposit_")

    @pytest.mark.unit
    async def test_strict_deposit_requires_hash(self, store, valuation, borrower):
        service = TransactionService(store, valuation=valuation, require_reference=True)

        with pytest.raises(ValidationError):
            await service.deposit(borrower.id, Decimal("0.1"))

        assert (await store.get_user(borrower.id)).btc_balance == Decimal("0.45")
        assert await store.get_user_transactions(borrower.id) == []

    @pytest.mark.unit
    @pytest.mark.parametrize("amount, currency", [
        (Decimal("0"), "BTC"),
        (Decimal("-2"), "BTC"),
        (Decimal("1"), "DOGE"),
    ])
    async def test_invalid_deposit(self, transaction_service, store, borrower, amount, currency):
        with pytest.raises(ValidationError):
            await transaction_service.deposit(borrower.id, amount, currency)

        assert await store.get_user_transactions(borrower.id) == []

    @pytest.mark.unit
    async def test_deposit_for_missing_user(self, transaction_service):
        with pytest.raises(NotFoundError):
            await transaction_service.deposit(999, Decimal("1"))


class TestWithdraw:
    """Tests for debiting balances"""

    @pytest.mark.unit
    async def test_withdraw_debits_balance(self, transaction_service, store, lender):
        transaction = await transaction_service.withdraw(lender.id, Decimal("0.5"), tx_hash="0xout")

        assert transaction.type == "withdrawal"
        assert transaction.description == "BTC Withdrawal"
        assert (await store.get_user(lender.id)).btc_balance == Decimal("1.5")

    @pytest.mark.unit
    async def test_withdraw_entire_balance(self, transaction_service, store, borrower):
        await transaction_service.withdraw(borrower.id, Decimal("0.45"))
        assert (await store.get_user(borrower.id)).btc_balance == 0

    @pytest.mark.unit
    async def test_insufficient_funds(self, transaction_service, store, borrower):
        with pytest.raises(ValidationError, match="Insufficient"):
            await transaction_service.withdraw(borrower.id, Decimal("0.46"))

        assert (await store.get_user(borrower.id)).btc_balance == Decimal("0.45")
        assert await store.get_user_transactions(borrower.id) == []

    @pytest.mark.unit
    async def test_withdraw_for_missing_user(self, transaction_service):
        with pytest.raises(NotFoundError):
            await transaction_service.withdraw(999, Decimal("1"))


class TestTransactionHistory:
    """Tests for listing transactions"""

    @pytest.mark.unit
    async def test_newest_first(self, transaction_service, borrower):
        first = await transaction_service.deposit(borrower.id, Decimal("1"))
        second = await transaction_service.withdraw(borrower.id, Decimal("0.2"))
        third = await transaction_service.deposit(borrower.id, Decimal("0.3"), "ETH")

        history = await transaction_service.get_user_transactions(borrower.id)
        assert [txn.id for txn in history] == [third.id, second.id, first.id]

    @pytest.mark.unit
    async def test_history_is_per_user(self, transaction_service, borrower, lender):
        await transaction_service.deposit(borrower.id, Decimal("1"))

        assert await transaction_service.get_user_transactions(lender.id) == []
