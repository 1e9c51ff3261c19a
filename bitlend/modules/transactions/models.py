from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from bitlend.core.database import Base


class Transaction(Base):
    """Append-only audit entry for a balance-affecting event"""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=True, index=True)  # NULL = standalone deposit/withdrawal
    amount = Column(Numeric(precision=28, scale=8), nullable=False)
    currency = Column(String(8), default="BTC", nullable=False)
    type = Column(String(16), nullable=False)  # deposit, withdrawal, disbursement, repayment
    description = Column(String(255), nullable=False)
    tx_hash = Column(String(128), nullable=True)
    reference_placeholder = Column(Boolean, default=False, nullable=False)
    usd_value = Column(Numeric(precision=28, scale=2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Transaction(id={self.id}, type={self.type}, amount={self.amount} {self.currency})>"
