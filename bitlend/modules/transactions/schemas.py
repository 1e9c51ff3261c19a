from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from enum import Enum


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISBURSEMENT = "disbursement"
    REPAYMENT = "repayment"


class TransactionRecord(BaseModel):
    """Stored transaction; immutable once written"""
    id: int
    user_id: int
    loan_id: Optional[int] = None
    amount: Decimal
    currency: str
    type: Literal["deposit", "withdrawal", "disbursement", "repayment"]
    description: str
    tx_hash: Optional[str] = None
    reference_placeholder: bool = False
    usd_value: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True
        frozen = True


class TransactionCreate(BaseModel):
    user_id: int
    loan_id: Optional[int] = None
    amount: Decimal
    currency: str
    type: Literal["deposit", "withdrawal", "disbursement", "repayment"]
    description: str
    tx_hash: Optional[str] = None
    reference_placeholder: bool = False
    usd_value: Optional[Decimal] = None


# Requests
class DepositRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="BTC", max_length=8)
    tx_hash: Optional[str] = None


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="BTC", max_length=8)
    tx_hash: Optional[str] = None


# Responses
class TransactionResponse(BaseModel):
    id: int
    user_id: int
    loan_id: Optional[int] = None
    amount: Decimal
    currency: str
    type: TransactionType
    description: str
    tx_hash: Optional[str] = None
    reference_placeholder: bool
    usd_value: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True
