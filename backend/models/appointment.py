"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, func, text
from backend.database import Base

OCCUPYING_STATUS_SQL = "status IN ('scheduled', 'confirmed', 'in_progress')"


class Appointment(Base):
    """Represents a booked appointment; cancellation is a status, never a delete."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_professional_date", "professional_id", "date"),
        # Two live bookings can never share a start for the same professional.
        Index(
            "uq_appointments_occupying_start",
            "professional_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=text(OCCUPYING_STATUS_SQL),
            postgresql_where=text(OCCUPYING_STATUS_SQL),
        ),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(String, nullable=False)
    patient_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:mm
    duration = Column(Integer, nullable=False)
    status = Column(String, default="scheduled", nullable=False)
    appointment_type = Column(String, default="first_visit", nullable=False)
    reason = Column(String)
    notes = Column(String)
    cancellation_reason = Column(String)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
