from sqlalchemy import Column, Integer, String, Numeric, Float, DateTime
from sqlalchemy.sql import func
from bitlend.core.database import Base


class User(Base):
    """Marketplace participant and custodial balance holder"""
    __tablename__ = "users"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    wallet_address = Column(String(128), unique=True, index=True, nullable=True)
    avatar_initials = Column(String(4), nullable=True)
    rating = Column(Float, default=0.0, nullable=False)

    # Balances, one column per supported currency
    btc_balance = Column(Numeric(precision=28, scale=8), default=0, nullable=False)
    eth_balance = Column(Numeric(precision=28, scale=8), default=0, nullable=False)
    sol_balance = Column(Numeric(precision=28, scale=8), default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, email={self.email})>"
