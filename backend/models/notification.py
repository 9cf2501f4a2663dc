"""Scheduled notification model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from backend.database import Base


class ScheduledNotification(Base):
    """A message queued for delivery to a user at a future time."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subject_id = Column(Integer, nullable=False)
    category = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    channel = Column(String, nullable=False)
    deliver_at = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default='pending')
    created_at = Column(DateTime, default=datetime.now)
