"""
Daily Record Model

One journal entry per user per calendar day. The AI summary is filled in
out of band after the entry is saved.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base


class DailyRecord(Base):
    __tablename__ = "daily_records"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Stored as YYYY-MM-DD text so range scans compare lexically like the local store
    date = Column(String(10), nullable=False, index=True)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Natural key: one entry per user/day
    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_daily_records_user_date'),
    )

    user = relationship("User", back_populates="daily_records")

    def __repr__(self):
        return f"<DailyRecord user={self.user_id} {self.date}>"
