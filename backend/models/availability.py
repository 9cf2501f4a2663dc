"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, Time, UniqueConstraint
from backend.database import Base


class Availability(Base):
    """A doctor's working window for one date."""
    __tablename__ = "availability"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', name='uq_availability_doctor_date'),
        CheckConstraint('start_time < end_time', name='ck_availability_window'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
