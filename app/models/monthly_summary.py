"""
Monthly Summary Model

Caches the generated monthly review for a user, keyed by YYYY-MM.
The review is stored as a JSON document; it is stale once any record in
the month has an updated_at later than this row's updated_at.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base


class MonthlySummary(Base):
    __tablename__ = "monthly_summaries"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(String(7), nullable=False, index=True)
    summary = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'month', name='uq_monthly_summaries_user_month'),
    )

    user = relationship("User", back_populates="monthly_summaries")

    def __repr__(self):
        return f"<MonthlySummary user={self.user_id} {self.month}>"
