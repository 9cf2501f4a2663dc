import enum
from datetime import date

from sqlalchemy.orm import Session

from backend.core.errors import AvailabilityConflictError
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.availability import Availability
from backend.services.slots import generate_slots


class SlotCheck(str, enum.Enum):
    OK = 'ok'
    NO_AVAILABILITY = 'no_availability'
    OUTSIDE_WINDOW = 'outside_window'
    SLOT_TAKEN = 'slot_taken'


CONFLICT_MESSAGES = {
    SlotCheck.NO_AVAILABILITY: 'No availability for this doctor on the selected date',
    SlotCheck.OUTSIDE_WINDOW: 'Selected time is not within available slots',
    SlotCheck.SLOT_TAKEN: 'Time slot already booked by another patient',
}


def find_availability(db: Session, doctor_id: int, slot_date: date) -> Availability | None:
    return db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.date == slot_date,
    ).first()


def find_active_appointment(
    db: Session,
    doctor_id: int,
    slot_date: date,
    slot_time: str,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == slot_date,
        Appointment.time == slot_time,
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.first()


def check_slot(
    db: Session,
    doctor_id: int,
    slot_date: date,
    slot_time: str,
    exclude_appointment_id: int | None = None,
    check_taken: bool = True,
) -> SlotCheck:
    availability = find_availability(db, doctor_id, slot_date)
    if availability is None:
        return SlotCheck.NO_AVAILABILITY

    if slot_time not in generate_slots(availability.start_time, availability.end_time):
        return SlotCheck.OUTSIDE_WINDOW

    if check_taken and find_active_appointment(db, doctor_id, slot_date, slot_time, exclude_appointment_id):
        return SlotCheck.SLOT_TAKEN

    return SlotCheck.OK


def ensure_slot_bookable(
    db: Session,
    doctor_id: int,
    slot_date: date,
    slot_time: str,
    exclude_appointment_id: int | None = None,
    check_taken: bool = True,
) -> None:
    result = check_slot(db, doctor_id, slot_date, slot_time, exclude_appointment_id, check_taken)
    if result is not SlotCheck.OK:
        raise AvailabilityConflictError(result, CONFLICT_MESSAGES[result])
