from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from backend.models.notification import ScheduledNotification
from backend.services.notifications import NotificationScheduler


def test_schedule_persists_pending_notification(db_session, users) -> None:
    scheduler = NotificationScheduler(db_session)

    notification = scheduler.schedule(
        users.patient.id,
        42,
        'appointment',
        'Reminder: Your appointment is tomorrow.',
        'email',
        datetime(2026, 3, 1, 9, 0),
    )

    stored = db_session.get(ScheduledNotification, notification.id)
    assert stored.recipient_id == users.patient.id
    assert stored.subject_id == 42
    assert stored.category == 'appointment'
    assert stored.channel == 'email'
    assert stored.deliver_at == datetime(2026, 3, 1, 9, 0)
    assert stored.status == 'pending'


def test_schedule_rolls_back_and_reraises_on_database_error(db_session, users, monkeypatch) -> None:
    scheduler = NotificationScheduler(db_session)
    rolled_back = []

    def failing_commit():
        raise SQLAlchemyError('database is down')

    monkeypatch.setattr(db_session, 'commit', failing_commit)
    monkeypatch.setattr(db_session, 'rollback', lambda: rolled_back.append(True))

    with pytest.raises(SQLAlchemyError):
        scheduler.schedule(users.patient.id, 1, 'appointment', 'msg', 'email', datetime(2026, 3, 1, 9, 0))

    assert rolled_back == [True]
