"""
Reporting-currency valuation.

``RateTableValuation`` multiplies by a static per-currency rate and falls back
to 1:1 for codes it does not know. Anything with a matching
``to_reporting_value`` method can stand in for it, e.g. a live price feed.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional, Protocol, Union
import logging

from bitlend.core.config import settings

logger = logging.getLogger(__name__)

REPORTING_QUANTUM = Decimal("0.01")


class ValuationSource(Protocol):
    def to_reporting_value(self, amount: Decimal, currency: str) -> Decimal:
        ...


class RateTableValuation:
    """Static rate table, e.g. BTC -> USD"""

    def __init__(self, rates: Optional[Mapping[str, Union[Decimal, float, int, str]]] = None):
        if rates is None:
            rates = settings.REPORTING_RATES
        self.rates: Dict[str, Decimal] = {
            code.upper(): Decimal(str(rate)) for code, rate in rates.items()
        }

    def rate_for(self, currency: str) -> Decimal:
        rate = self.rates.get(currency.upper())
        if rate is None:
            logger.debug(f"No reporting rate for {currency}, using 1:1")
            return Decimal(1)
        return rate

    def to_reporting_value(self, amount: Decimal, currency: str) -> Decimal:
        value = Decimal(str(amount)) * self.rate_for(currency)
        return value.quantize(REPORTING_QUANTUM, rounding=ROUND_HALF_UP)


def build_valuation(config=settings) -> RateTableValuation:
    """Rate table from REPORTING_RATES"""
    return RateTableValuation(config.REPORTING_RATES)
