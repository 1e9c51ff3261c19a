# Stats module
from bitlend.modules.stats.models import UserStats

__all__ = ["UserStats"]
