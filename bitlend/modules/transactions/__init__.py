# Transactions module
from bitlend.modules.transactions.models import Transaction

__all__ = ["Transaction"]
