# Loans module
from bitlend.modules.loans.models import Loan

__all__ = ["Loan"]
