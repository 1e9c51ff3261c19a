from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

# One satoshi; every derived crypto amount is rounded to this
AMOUNT_QUANTUM = Decimal("0.00000001")


def to_decimal(value: Number) -> Decimal:
    """Convert without inheriting binary float noise"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def compute_repayment_amount(principal: Number, interest_percent: Number, duration_months: int) -> Decimal:
    """
    Total owed under simple interest: P + P * r * t,
    with r the yearly rate as a fraction and t the duration in years.
    """
    principal = to_decimal(principal)
    rate = to_decimal(interest_percent) / Decimal(100)
    years = Decimal(duration_months) / Decimal(12)
    return quantize_amount(principal + principal * rate * years)


def compute_monthly_payment(principal: Number, interest_percent: Number, duration_months: int) -> Decimal:
    """Equal monthly share of the total repayment"""
    total = compute_repayment_amount(principal, interest_percent, duration_months)
    return quantize_amount(total / Decimal(duration_months))


def compute_interest_share(repayment: Number, interest_percent: Number) -> Decimal:
    """Interest attributed to the lender for a single repayment"""
    return quantize_amount(to_decimal(repayment) * to_decimal(interest_percent) / Decimal(100))
