import logging
import re
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.call_links import issue_call_link
from backend.auth.dependencies import (
    ensure_doctor_access,
    ensure_participant,
    ensure_patient_access,
    get_current_user,
)
from backend.core import config
from backend.core.cache import (
    ResponseCache,
    doctor_appointments_key,
    get_response_cache,
    patient_appointments_key,
)
from backend.core.errors import (
    AuthorizationError,
    AvailabilityConflictError,
    DatabaseUnavailableError,
    ExpiredCapabilityError,
    NotFoundError,
)
from backend.database import ensure_appointment_schema, ensure_availability_schema, get_db
from backend.models.appointment import STATUS_CANCELLED, STATUS_CONFIRMED, Appointment
from backend.models.user import User
from backend.services.conflicts import CONFLICT_MESSAGES, SlotCheck, ensure_slot_bookable
from backend.services.directory import get_users_by_id
from backend.services.notifications import NotificationScheduler, get_notification_scheduler
from backend.services.slots import parse_slot_time, validate_slot_date

logger = logging.getLogger(__name__)

router = APIRouter(tags=['appointments'])

TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')
APPOINTMENT_TYPE = 'Video Consultation'
REMINDER_CATEGORY = 'appointment'


def validate_time_format(value: str) -> str:
    normalized = value.strip()
    if not TIME_PATTERN.match(normalized):
        raise ValueError('Invalid time format')
    return normalized


class BookAppointmentRequest(BaseModel):
    patient_id: int = Field(alias='patientId')
    doctor_id: int = Field(alias='doctorId')
    date: date
    time: str

    class Config:
        populate_by_name = True

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: date) -> date:
        return validate_slot_date(value)

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_time_format(value)


class RescheduleAppointmentRequest(BaseModel):
    new_date: date = Field(alias='newDate')
    new_time: str = Field(alias='newTime')

    class Config:
        populate_by_name = True

    @field_validator('new_date')
    @classmethod
    def validate_new_date(cls, value: date) -> date:
        return validate_slot_date(value)

    @field_validator('new_time')
    @classmethod
    def validate_new_time(cls, value: str) -> str:
        return validate_time_format(value)


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Status is required.')
        return normalized


class BookAppointmentResponse(BaseModel):
    message: str
    appointment_id: int = Field(alias='appointmentId')
    call_link: str | None = Field(default=None, alias='callLink')
    warnings: list[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class RescheduleAppointmentResponse(BaseModel):
    message: str
    call_link: str | None = Field(default=None, alias='callLink')

    class Config:
        populate_by_name = True


class MessageResponse(BaseModel):
    message: str


class CallLinkResponse(BaseModel):
    call_link: str = Field(alias='callLink')

    class Config:
        populate_by_name = True


class AppointmentSummary(BaseModel):
    appointment_id: int = Field(alias='appointmentId')
    doctor_id: int = Field(alias='doctorId')
    doctor_name: str | None = Field(default=None, alias='doctorName')
    doctor_specialty: str | None = Field(default=None, alias='doctorSpecialty')
    patient_id: int = Field(alias='patientId')
    patient_name: str | None = Field(default=None, alias='patientName')
    date: date
    time: str
    status: str
    call_link: str | None = Field(default=None, alias='callLink')
    type: str = APPOINTMENT_TYPE

    class Config:
        populate_by_name = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc


def invalidate_appointment_lists(cache: ResponseCache, patient_id: int, doctor_id: int) -> None:
    cache.invalidate(patient_appointments_key(patient_id), doctor_appointments_key(doctor_id))


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError('Appointment not found')
    return appointment


def slot_taken_error() -> AvailabilityConflictError:
    return AvailabilityConflictError(SlotCheck.SLOT_TAKEN, CONFLICT_MESSAGES[SlotCheck.SLOT_TAKEN])


def schedule_reminders(db: Session, notifier: NotificationScheduler, appointment: Appointment) -> None:
    users = get_users_by_id(db, [appointment.patient_id, appointment.doctor_id])
    patient = users.get(appointment.patient_id)
    doctor = users.get(appointment.doctor_id)
    if patient is None or doctor is None:
        raise LookupError(f'Participants of appointment {appointment.id} could not be resolved')

    reminder_at = appointment.starts_at - timedelta(hours=config.REMINDER_LEAD_HOURS)
    date_text = appointment.date.isoformat()

    notifier.schedule(
        patient.id,
        appointment.id,
        REMINDER_CATEGORY,
        f'Reminder: Your appointment with Dr. {doctor.name} is scheduled for {date_text} at {appointment.time}.',
        config.NOTIFICATION_CHANNEL,
        reminder_at,
    )
    notifier.schedule(
        doctor.id,
        appointment.id,
        REMINDER_CATEGORY,
        f'Reminder: You have an appointment with {patient.name} on {date_text} at {appointment.time}.',
        config.NOTIFICATION_CHANNEL,
        reminder_at,
    )


def build_appointment_summaries(db: Session, appointments: list[Appointment]) -> list[AppointmentSummary]:
    user_ids = {appointment.doctor_id for appointment in appointments}
    user_ids.update(appointment.patient_id for appointment in appointments)
    users = get_users_by_id(db, user_ids)

    summaries = []
    for appointment in appointments:
        doctor = users.get(appointment.doctor_id)
        patient = users.get(appointment.patient_id)
        summaries.append(
            AppointmentSummary(
                appointment_id=appointment.id,
                doctor_id=appointment.doctor_id,
                doctor_name=doctor.name if doctor else None,
                doctor_specialty=doctor.specialty if doctor and doctor.role == 'doctor' else None,
                patient_id=appointment.patient_id,
                patient_name=patient.name if patient else None,
                date=appointment.date,
                time=appointment.time,
                status=appointment.status,
            )
        )
    return summaries


def attach_call_links(summaries: list[AppointmentSummary], current_user) -> list[AppointmentSummary]:
    # Tokens are never cached; each response gets links issued for its own caller.
    now = datetime.now()
    return [
        summary.model_copy(
            update={
                'call_link': issue_call_link(
                    summary.appointment_id,
                    datetime.combine(summary.date, parse_slot_time(summary.time)),
                    current_user,
                    now=now,
                )
            }
        )
        for summary in summaries
    ]


def list_appointments_for(
    db: Session,
    cache: ResponseCache,
    cache_key: str,
    subject_column,
    subject_id: int,
    current_user,
) -> list[AppointmentSummary]:
    cached = cache.get(cache_key)
    if cached is not None:
        return attach_call_links(cached, current_user)

    generation = cache.generation(cache_key)
    ensure_database_ready()

    try:
        appointments = db.query(Appointment).filter(
            subject_column == subject_id,
        ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()

        if not appointments:
            raise NotFoundError('No appointments found')

        summaries = build_appointment_summaries(db, appointments)
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc

    cache.set(cache_key, summaries, generation)
    return attach_call_links(summaries, current_user)


@router.post('', response_model=BookAppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
    notifier: NotificationScheduler = Depends(get_notification_scheduler),
):
    invalidate_appointment_lists(cache, data.patient_id, data.doctor_id)

    if current_user.role != 'patient':
        raise AuthorizationError('Only patients can book appointments')
    if current_user.id != data.patient_id:
        raise AuthorizationError('Cannot book appointment for other patients')

    ensure_database_ready()

    try:
        ensure_slot_bookable(db, data.doctor_id, data.date, data.time)

        appointment = Appointment(
            patient_id=data.patient_id,
            doctor_id=data.doctor_id,
            date=data.date,
            time=data.time,
            status=STATUS_CONFIRMED,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise slot_taken_error() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    appointment_id = appointment.id
    starts_at = appointment.starts_at
    invalidate_appointment_lists(cache, data.patient_id, data.doctor_id)
    logger.info(
        'Booked appointment %s for patient %s with doctor %s at %s',
        appointment_id,
        data.patient_id,
        data.doctor_id,
        starts_at.isoformat(),
    )

    # The booking is committed; failures past this point only produce warnings.
    warnings: list[str] = []
    try:
        schedule_reminders(db, notifier, appointment)
    except Exception:
        logger.exception('Failed to schedule reminders for appointment %s', appointment_id)
        warnings.append('Reminder notifications could not be scheduled.')

    call_link = None
    try:
        call_link = issue_call_link(appointment_id, starts_at, current_user)
    except Exception:
        logger.exception('Failed to issue call link for appointment %s', appointment_id)
    if call_link is None:
        warnings.append('Call link is not available for this appointment.')

    return BookAppointmentResponse(
        message='Appointment booked successfully',
        appointment_id=appointment_id,
        call_link=call_link,
        warnings=warnings,
    )


@router.get('/patient/{patient_id}', response_model=list[AppointmentSummary])
def get_appointments_by_patient(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_patient_access(current_user, patient_id)
    return list_appointments_for(
        db,
        cache,
        patient_appointments_key(patient_id),
        Appointment.patient_id,
        patient_id,
        current_user,
    )


@router.get('/doctor/{doctor_id}', response_model=list[AppointmentSummary])
def get_appointments_by_doctor(
    doctor_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_doctor_access(current_user, doctor_id)
    return list_appointments_for(
        db,
        cache,
        doctor_appointments_key(doctor_id),
        Appointment.doctor_id,
        doctor_id,
        current_user,
    )


@router.patch('/{appointment_id}', response_model=RescheduleAppointmentResponse)
@router.put('/{appointment_id}', response_model=RescheduleAppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_participant(current_user, appointment.patient_id, appointment.doctor_id)
        ensure_slot_bookable(
            db,
            appointment.doctor_id,
            data.new_date,
            data.new_time,
            exclude_appointment_id=appointment.id,
            # A cancelled appointment holds no slot, so only the window is checked.
            check_taken=appointment.status != STATUS_CANCELLED,
        )

        appointment.date = data.new_date
        appointment.time = data.new_time
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise slot_taken_error() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    invalidate_appointment_lists(cache, appointment.patient_id, appointment.doctor_id)
    logger.info('Rescheduled appointment %s to %s %s', appointment_id, data.new_date.isoformat(), data.new_time)

    return RescheduleAppointmentResponse(
        message='Appointment rescheduled',
        call_link=issue_call_link(appointment.id, appointment.starts_at, current_user),
    )


@router.post('/{appointment_id}/cancel', response_model=MessageResponse)
@router.patch('/{appointment_id}/cancel', response_model=MessageResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_participant(current_user, appointment.patient_id, appointment.doctor_id)

        invalidate_appointment_lists(cache, appointment.patient_id, appointment.doctor_id)

        appointment.status = STATUS_CANCELLED
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    logger.info('Cancelled appointment %s', appointment_id)
    return MessageResponse(message='Appointment cancelled')


@router.patch('/{appointment_id}/status', response_model=MessageResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_participant(current_user, appointment.patient_id, appointment.doctor_id)

        appointment.status = data.status
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        # Re-activating a cancelled appointment whose slot was rebooked.
        db.rollback()
        raise slot_taken_error() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    invalidate_appointment_lists(cache, appointment.patient_id, appointment.doctor_id)
    logger.info('Appointment %s status set to %s', appointment_id, data.status)
    return MessageResponse(message='Status updated')


@router.get('/{appointment_id}/call-link', response_model=CallLinkResponse)
def get_call_link(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc

    ensure_participant(current_user, appointment.patient_id, appointment.doctor_id)

    call_link = issue_call_link(appointment.id, appointment.starts_at, current_user)
    if call_link is None:
        raise ExpiredCapabilityError()

    return CallLinkResponse(call_link=call_link)
