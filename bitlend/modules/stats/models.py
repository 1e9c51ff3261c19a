from sqlalchemy import Column, Integer, Numeric, ForeignKey
from bitlend.core.database import Base


class UserStats(Base):
    """Per-user lending aggregates, maintained only by the accounting service"""
    __tablename__ = "stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    total_borrowed = Column(Numeric(precision=28, scale=8), default=0, nullable=False)
    total_lent = Column(Numeric(precision=28, scale=8), default=0, nullable=False)
    active_loans = Column(Integer, default=0, nullable=False)
    interest_earned = Column(Numeric(precision=28, scale=8), default=0, nullable=False)

    def __repr__(self):
        return f"<UserStats(user_id={self.user_id}, active_loans={self.active_loans})>"
