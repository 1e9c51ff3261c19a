from pydantic import BaseModel
from decimal import Decimal
from typing import Optional


class StatsRecord(BaseModel):
    id: int
    user_id: int
    total_borrowed: Decimal = Decimal("0")
    total_lent: Decimal = Decimal("0")
    active_loans: int = 0
    interest_earned: Decimal = Decimal("0")

    class Config:
        from_attributes = True


class StatsCreate(BaseModel):
    user_id: int
    total_borrowed: Decimal = Decimal("0")
    total_lent: Decimal = Decimal("0")
    active_loans: int = 0
    interest_earned: Decimal = Decimal("0")


class StatsDelta(BaseModel):
    """Signed adjustments; unset fields are left untouched"""
    total_borrowed: Optional[Decimal] = None
    total_lent: Optional[Decimal] = None
    active_loans: Optional[int] = None
    interest_earned: Optional[Decimal] = None


class StatsResponse(BaseModel):
    user_id: int
    total_borrowed: Decimal
    total_lent: Decimal
    active_loans: int
    interest_earned: Decimal

    class Config:
        from_attributes = True
