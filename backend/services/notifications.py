import logging
from datetime import datetime

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.models.notification import ScheduledNotification

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Queues messages for later delivery; delivery itself happens elsewhere."""

    def __init__(self, db: Session):
        self.db = db

    def schedule(
        self,
        recipient_id: int,
        subject_id: int,
        category: str,
        message: str,
        channel: str,
        deliver_at: datetime,
    ) -> ScheduledNotification:
        notification = ScheduledNotification(
            recipient_id=recipient_id,
            subject_id=subject_id,
            category=category,
            message=message,
            channel=channel,
            deliver_at=deliver_at,
            status='pending',
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(notification)
        logger.info(
            'Scheduled %s %s notification %s for user %s at %s',
            channel,
            category,
            notification.id,
            recipient_id,
            deliver_at.isoformat(),
        )
        return notification


def get_notification_scheduler(db: Session = Depends(get_db)) -> NotificationScheduler:
    return NotificationScheduler(db)
