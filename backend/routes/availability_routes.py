from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.core.errors import AuthorizationError, DatabaseUnavailableError, NotFoundError
from backend.database import ensure_appointment_schema, ensure_availability_schema, get_db
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.availability import Availability
from backend.models.user import User
from backend.services.conflicts import CONFLICT_MESSAGES, SlotCheck, find_availability
from backend.services.slots import format_slot_time, generate_slots, validate_slot_date

router = APIRouter(tags=['availability'])


class SetAvailabilityRequest(BaseModel):
    date: date
    start_time: time = Field(alias='startTime')
    end_time: time = Field(alias='endTime')

    class Config:
        populate_by_name = True

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: date) -> date:
        return validate_slot_date(value)

    @model_validator(mode='after')
    def validate_window(self):
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int = Field(alias='doctorId')
    date: date
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')

    class Config:
        populate_by_name = True


class SlotResponse(BaseModel):
    time: str
    is_booked: bool = Field(alias='isBooked')

    class Config:
        populate_by_name = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc


def to_availability_response(availability: Availability) -> AvailabilityResponse:
    return AvailabilityResponse(
        id=availability.id,
        doctor_id=availability.doctor_id,
        date=availability.date,
        start_time=format_slot_time(availability.start_time),
        end_time=format_slot_time(availability.end_time),
    )


@router.put('', response_model=AvailabilityResponse)
def set_availability(
    data: SetAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != 'doctor':
        raise AuthorizationError('Only doctors can set availability')

    ensure_database_ready()

    try:
        availability = find_availability(db, current_user.id, data.date)
        if availability is None:
            availability = Availability(doctor_id=current_user.id, date=data.date)
            db.add(availability)

        availability.start_time = data.start_time.replace(second=0, microsecond=0)
        availability.end_time = data.end_time.replace(second=0, microsecond=0)
        db.commit()
        db.refresh(availability)

        return to_availability_response(availability)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc


@router.get('/{doctor_id}', response_model=list[AvailabilityResponse])
def list_availability(
    doctor_id: int,
    from_date: date | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        windows = db.query(Availability).filter(
            Availability.doctor_id == doctor_id,
            Availability.date >= (from_date or date.today()),
        ).order_by(Availability.date.asc()).all()

        return [to_availability_response(window) for window in windows]
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc


@router.get('/{doctor_id}/{slot_date}/slots', response_model=list[SlotResponse])
def list_slots(
    doctor_id: int,
    slot_date: date,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    try:
        availability = find_availability(db, doctor_id, slot_date)
        if availability is None:
            raise NotFoundError(CONFLICT_MESSAGES[SlotCheck.NO_AVAILABILITY])

        booked_times = {
            booked_time
            for (booked_time,) in db.query(Appointment.time).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.date == slot_date,
                Appointment.status != STATUS_CANCELLED,
            ).all()
        }

        return [
            SlotResponse(time=slot, is_booked=slot in booked_times)
            for slot in generate_slots(availability.start_time, availability.end_time)
        ]
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc
