"""Weekly schedule template definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, func
from backend.database import Base


class Schedule(Base):
    """Represents a recurring weekly working window for one professional."""
    __tablename__ = "schedules"
    __table_args__ = (
        Index("idx_schedules_professional_day", "professional_id", "day_of_week"),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(String, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday..6=Saturday
    start_time = Column(String(5), nullable=False)  # HH:mm
    end_time = Column(String(5), nullable=False)
    slot_duration = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(Date)
    valid_until = Column(Date)
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
