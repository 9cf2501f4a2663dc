from datetime import date, datetime, time, timedelta

from backend.core import config

SLOT_TIME_FORMAT = '%H:%M'

# Anchor date for time-of-day arithmetic; the calendar date never affects slots.
_ANCHOR_DAY = datetime(2000, 1, 1)

# Appointment start plus call-link grace must stay representable as a datetime.
LATEST_SLOT_DATE = date(9998, 12, 31)


def parse_slot_time(value: time | str) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    return datetime.strptime(value, SLOT_TIME_FORMAT).time()


def format_slot_time(value: time) -> str:
    return value.strftime(SLOT_TIME_FORMAT)


def generate_slots(
    start_time: time | str,
    end_time: time | str,
    increment_minutes: int | None = None,
) -> list[str]:
    """Return bookable "HH:MM" start times in the half-open window [start_time, end_time)."""
    step = timedelta(minutes=increment_minutes or config.SLOT_INCREMENT_MINUTES)
    current = datetime.combine(_ANCHOR_DAY, parse_slot_time(start_time))
    end = datetime.combine(_ANCHOR_DAY, parse_slot_time(end_time))

    slots: list[str] = []
    while current < end:
        slots.append(format_slot_time(current.time()))
        current += step

    return slots


def validate_slot_date(value: date) -> date:
    if value > LATEST_SLOT_DATE:
        raise ValueError(f'Date must be on or before {LATEST_SLOT_DATE.isoformat()}.')
    return value
