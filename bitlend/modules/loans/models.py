from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.sql import func
from bitlend.core.database import Base


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loans_amount_positive"),
        CheckConstraint("interest_rate >= 0 AND interest_rate <= 100", name="ck_loans_interest_range"),
        CheckConstraint("duration_months >= 1", name="ck_loans_duration_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    lender_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    borrower_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    amount = Column(Numeric(precision=28, scale=8), nullable=False)
    currency = Column(String(8), default="BTC", nullable=False)
    interest_rate = Column(Numeric(precision=7, scale=4), nullable=False)  # percent
    duration_months = Column(Integer, nullable=False)
    has_collateral = Column(Boolean, default=False, nullable=False)

    status = Column(String(16), default="pending", nullable=False, index=True)  # pending, active, completed, defaulted
    type = Column(String(16), nullable=False)  # request, offer
    amount_repaid = Column(Numeric(precision=28, scale=8), default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Loan(id={self.id}, type={self.type}, status={self.status}, amount={self.amount})>"
