from fastapi import APIRouter, Depends

from bitlend.core.dependencies import get_accounting_service, get_current_user
from bitlend.modules.stats.schemas import StatsResponse
from bitlend.modules.stats.services import AccountingService
from bitlend.modules.users.schemas import UserRecord

router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_my_stats(
    current_user: UserRecord = Depends(get_current_user),
    service: AccountingService = Depends(get_accounting_service)
):
    """
    Get the current user's lending stats.

    - Totals borrowed and lent, active loan count, interest earned
    """
    return await service.get_user_stats(current_user.id)
