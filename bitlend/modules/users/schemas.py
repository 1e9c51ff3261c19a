from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


# Balance column per supported currency
BALANCE_FIELDS = {
    "BTC": "btc_balance",
    "ETH": "eth_balance",
    "SOL": "sol_balance",
}


def balance_field(currency: str) -> Optional[str]:
    """Attribute holding a user's balance in ``currency``, if it is tracked"""
    return BALANCE_FIELDS.get(currency.upper())


# Stored user
class UserRecord(BaseModel):
    """User as held by the ledger store; the password hash never serializes"""
    id: int
    username: str
    email: str
    hashed_password: str = Field(exclude=True, repr=False)
    wallet_address: Optional[str] = None
    avatar_initials: Optional[str] = None
    rating: float = 0.0
    btc_balance: Decimal = Decimal("0")
    eth_balance: Decimal = Decimal("0")
    sol_balance: Decimal = Decimal("0")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def balance_for(self, currency: str) -> Decimal:
        field = balance_field(currency)
        if field is None:
            raise KeyError(currency)
        return getattr(self, field)


class UserCreate(BaseModel):
    """Fields needed to insert a user"""
    username: str
    email: str
    hashed_password: str
    wallet_address: Optional[str] = None
    avatar_initials: Optional[str] = None
    rating: float = 0.0
    btc_balance: Decimal = Decimal("0")
    eth_balance: Decimal = Decimal("0")
    sol_balance: Decimal = Decimal("0")


# Requests
class UserRegistrationRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    wallet_address: Optional[str] = None


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class ConnectWalletRequest(BaseModel):
    wallet_address: str = Field(..., min_length=1, max_length=128)


# Responses
class UserProfileResponse(BaseModel):
    id: int
    username: str
    email: str
    wallet_address: Optional[str] = None
    avatar_initials: Optional[str] = None
    rating: float
    btc_balance: Decimal
    eth_balance: Decimal
    sol_balance: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfileResponse
