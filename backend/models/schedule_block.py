"""Blocked interval definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, func
from backend.database import Base


class ScheduleBlock(Base):
    """Represents a one-off blocked span; no times means the whole day."""
    __tablename__ = "schedule_blocks"
    __table_args__ = (
        Index("idx_schedule_blocks_professional_date", "professional_id", "date"),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5))
    end_time = Column(String(5))
    reason = Column(String, default="", nullable=False)
    recurring_yearly = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
