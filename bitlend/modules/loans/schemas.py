from pydantic import BaseModel, Field, TypeAdapter, computed_field
from pydantic import ValidationError as PydanticValidationError
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Union
from enum import Enum

from bitlend.core.exceptions import InvariantViolation
from bitlend.modules.loans.utils import compute_repayment_amount, compute_monthly_payment


class LoanStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class LoanType(str, Enum):
    REQUEST = "request"
    OFFER = "offer"


class LoanRole(str, Enum):
    BORROWER = "borrower"
    LENDER = "lender"


# ============ Stored loan shapes ============

class LoanBase(BaseModel):
    """Fields shared by every loan shape"""
    id: int
    amount: Decimal
    currency: str = "BTC"
    interest_rate: Decimal
    duration_months: int
    has_collateral: bool = False
    amount_repaid: Decimal = Decimal("0")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @computed_field
    @property
    def total_repayment(self) -> Decimal:
        return compute_repayment_amount(self.amount, self.interest_rate, self.duration_months)

    @computed_field
    @property
    def outstanding_balance(self) -> Decimal:
        return max(Decimal("0"), self.total_repayment - self.amount_repaid)


class PendingRequest(LoanBase):
    """Borrower waiting for a lender"""
    status: Literal["pending"] = "pending"
    type: Literal["request"] = "request"
    borrower_id: int
    lender_id: None = None


class PendingOffer(LoanBase):
    """Lender waiting for a borrower"""
    status: Literal["pending"] = "pending"
    type: Literal["offer"] = "offer"
    lender_id: int
    borrower_id: None = None


class MatchedLoan(LoanBase):
    """Both parties known; active until repaid"""
    status: Literal["active", "completed", "defaulted"]
    type: Literal["request", "offer"]
    lender_id: int
    borrower_id: int


LoanRecord = Union[PendingRequest, PendingOffer, MatchedLoan]

_loan_adapter = TypeAdapter(LoanRecord)


def parse_loan(data: Any) -> LoanRecord:
    """
    Build the loan shape matching ``data`` (a mapping or an ORM row).

    A row whose status and parties fit none of the shapes breaks the
    pending/active invariant and is reported as such.
    """
    try:
        return _loan_adapter.validate_python(data, from_attributes=True)
    except PydanticValidationError as exc:
        loan_id = data.get("id") if isinstance(data, dict) else getattr(data, "id", None)
        raise InvariantViolation(f"Loan {loan_id} does not match any valid loan state") from exc


class LoanCreate(BaseModel):
    """Fields needed to insert a pending loan"""
    lender_id: Optional[int] = None
    borrower_id: Optional[int] = None
    amount: Decimal
    currency: str
    interest_rate: Decimal
    duration_months: int
    has_collateral: bool = False
    type: Literal["request", "offer"]


# ============ Requests ============

class LoanCreateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Principal in the loan currency")
    interest_rate: Decimal = Field(..., ge=0, le=100, description="Interest in percent")
    duration_months: int = Field(..., ge=1)
    has_collateral: bool = False
    currency: str = Field(default="BTC", max_length=8)


class LoanAcceptRequest(BaseModel):
    tx_hash: Optional[str] = None


class LoanRepaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None
    tx_hash: Optional[str] = None


class RepaymentQuoteRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(..., ge=0, le=100)
    duration_months: int = Field(..., ge=1)


# ============ Responses ============

class LoanResponse(BaseModel):
    id: int
    lender_id: Optional[int] = None
    borrower_id: Optional[int] = None
    amount: Decimal
    currency: str
    interest_rate: Decimal
    duration_months: int
    has_collateral: bool
    status: LoanStatus
    type: LoanType
    amount_repaid: Decimal
    total_repayment: Decimal
    outstanding_balance: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RepaymentQuoteResponse(BaseModel):
    principal: Decimal
    interest_rate: Decimal
    duration_months: int
    total_repayment: Decimal
    total_interest: Decimal
    monthly_payment: Decimal

    @classmethod
    def build(cls, principal: Decimal, interest_rate: Decimal, duration_months: int) -> "RepaymentQuoteResponse":
        total = compute_repayment_amount(principal, interest_rate, duration_months)
        return cls(
            principal=principal,
            interest_rate=interest_rate,
            duration_months=duration_months,
            total_repayment=total,
            total_interest=total - principal,
            monthly_payment=compute_monthly_payment(principal, interest_rate, duration_months),
        )
