from decimal import Decimal
import logging

from bitlend.core.exceptions import InvariantViolation, NotFoundError
from bitlend.modules.stats.schemas import StatsDelta, StatsRecord
from bitlend.store.base import LedgerStore

logger = logging.getLogger(__name__)


class AccountingService:
    """
    Keeps the per-user lending aggregates in step with loan events.

    Callers run these inside the same ``store.atomic()`` block as the loan
    write they account for, so stats never drift from the loans.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    async def apply_stats_delta(self, user_id: int, delta: StatsDelta) -> StatsRecord:
        """Add each provided delta to the user's stats and write them back"""
        stats = await self.store.get_user_stats(user_id, for_update=True)
        if stats is None:
            logger.error(f"Stats record missing for user {user_id}")
            raise InvariantViolation(f"No stats record for user {user_id}")

        changes = {
            field: getattr(stats, field) + value
            for field, value in delta.model_dump(exclude_none=True).items()
        }
        if not changes:
            return stats

        updated = await self.store.update_stats(stats.model_copy(update=changes))
        if updated is None:
            logger.error(f"Stats record for user {user_id} vanished during update")
            raise InvariantViolation(f"No stats record for user {user_id}")
        return updated

    async def record_match(self, lender_id: int, borrower_id: int, amount: Decimal) -> None:
        """A loan went active: count it for both parties"""
        await self.apply_stats_delta(lender_id, StatsDelta(total_lent=amount, active_loans=1))
        await self.apply_stats_delta(borrower_id, StatsDelta(total_borrowed=amount, active_loans=1))

    async def record_interest(self, lender_id: int, interest: Decimal) -> StatsRecord:
        return await self.apply_stats_delta(lender_id, StatsDelta(interest_earned=interest))

    async def record_completion(self, lender_id: int, borrower_id: int) -> None:
        """A loan was repaid in full and no longer counts as active"""
        await self.apply_stats_delta(lender_id, StatsDelta(active_loans=-1))
        await self.apply_stats_delta(borrower_id, StatsDelta(active_loans=-1))

    async def get_user_stats(self, user_id: int) -> StatsRecord:
        """Get stats for a user"""
        stats = await self.store.get_user_stats(user_id)
        if stats is None:
            raise NotFoundError(f"Stats for user {user_id} not found")
        return stats
