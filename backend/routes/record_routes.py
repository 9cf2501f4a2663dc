import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import ensure_patient_access, get_current_user
from backend.core.cache import ResponseCache, get_response_cache, patient_records_key, record_key
from backend.core.errors import DatabaseUnavailableError, NotFoundError
from backend.database import ensure_record_schema, get_db
from backend.models.record import MedicalRecord
from backend.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=['records'])

RECORD_TYPES = ('lab_result', 'prescription', 'imaging', 'visit_summary', 'other')
MAX_RECORD_NOTES_LENGTH = 2000


def _normalize_record_type(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in RECORD_TYPES:
        raise ValueError('Invalid record type.')
    return normalized


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_RECORD_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_RECORD_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateRecordRequest(BaseModel):
    title: str
    record_type: str = Field(default='other', alias='type')
    notes: str | None = None
    file_url: str | None = Field(default=None, alias='fileUrl')

    class Config:
        populate_by_name = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized

    @field_validator('record_type')
    @classmethod
    def validate_record_type(cls, value: str) -> str:
        return _normalize_record_type(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateRecordRequest(BaseModel):
    title: str | None = None
    record_type: str | None = Field(default=None, alias='type')
    notes: str | None = None
    file_url: str | None = Field(default=None, alias='fileUrl')

    class Config:
        populate_by_name = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        normalized = (value or '').strip()
        if not normalized:
            raise ValueError('Title cannot be blank.')
        return normalized

    @field_validator('record_type')
    @classmethod
    def validate_record_type(cls, value: str | None) -> str:
        if value is None:
            raise ValueError('Record type cannot be null.')
        return _normalize_record_type(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class RecordResponse(BaseModel):
    id: int
    patient_id: int = Field(alias='patientId')
    title: str
    record_type: str = Field(alias='type')
    notes: str | None = None
    file_url: str | None = Field(default=None, alias='fileUrl')
    uploaded_by: int | None = Field(default=None, alias='uploadedBy')
    last_updated_by: int | None = Field(default=None, alias='lastUpdatedBy')
    created_at: datetime | None = Field(default=None, alias='createdAt')

    class Config:
        from_attributes = True
        populate_by_name = True


class DeleteRecordResponse(BaseModel):
    message: str
    record: RecordResponse


def ensure_database_ready() -> None:
    try:
        ensure_record_schema()
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc


def get_record_or_404(db: Session, record_id: int) -> MedicalRecord:
    record = db.get(MedicalRecord, record_id)
    if record is None or record.is_deleted:
        raise NotFoundError('Record not found')
    return record


@router.get('/patient/{patient_id}', response_model=list[RecordResponse])
def list_records(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_patient_access(current_user, patient_id)

    cache_key = patient_records_key(patient_id)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    generation = cache.generation(cache_key)
    ensure_database_ready()

    try:
        records = db.query(MedicalRecord).filter(
            MedicalRecord.patient_id == patient_id,
            MedicalRecord.is_deleted.is_(False),
        ).order_by(MedicalRecord.created_at.desc()).all()
    except SQLAlchemyError as exc:
        raise DatabaseUnavailableError() from exc

    result = [RecordResponse.model_validate(record) for record in records]
    cache.set(cache_key, result, generation)
    return result


@router.get('/{record_id}', response_model=RecordResponse)
def get_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    cache_key = record_key(record_id)
    cached = cache.get(cache_key)
    if cached is None:
        generation = cache.generation(cache_key)
        ensure_database_ready()
        try:
            cached = RecordResponse.model_validate(get_record_or_404(db, record_id))
        except SQLAlchemyError as exc:
            raise DatabaseUnavailableError() from exc
        cache.set(cache_key, cached, generation)

    ensure_patient_access(current_user, cached.patient_id)
    return cached


@router.post('/patient/{patient_id}', response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
def create_record(
    patient_id: int,
    data: CreateRecordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_patient_access(current_user, patient_id)
    ensure_database_ready()

    try:
        record = MedicalRecord(
            patient_id=patient_id,
            title=data.title,
            record_type=data.record_type,
            notes=data.notes,
            file_url=data.file_url,
            uploaded_by=current_user.id,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    cache.invalidate(patient_records_key(patient_id))
    logger.info('Created record %s for patient %s', record.id, patient_id)
    return RecordResponse.model_validate(record)


@router.patch('/{record_id}', response_model=RecordResponse)
def update_record(
    record_id: int,
    data: UpdateRecordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_database_ready()

    try:
        record = get_record_or_404(db, record_id)
        ensure_patient_access(current_user, record.patient_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(record, field, value)
        record.last_updated_by = current_user.id
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    updated = RecordResponse.model_validate(record)
    # Bump generations before the write-through so in-flight reads drop their fill.
    cache.invalidate(record_key(record_id), patient_records_key(record.patient_id))
    cache.set(record_key(record_id), updated)
    return updated


@router.delete('/{record_id}', response_model=DeleteRecordResponse)
def delete_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    ensure_database_ready()

    try:
        record = get_record_or_404(db, record_id)
        ensure_patient_access(current_user, record.patient_id)

        record.is_deleted = True
        record.deleted_by = current_user.id
        record.deleted_at = datetime.now()
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DatabaseUnavailableError() from exc

    cache.invalidate(record_key(record_id), patient_records_key(record.patient_id))
    logger.info('Soft-deleted record %s', record_id)
    return DeleteRecordResponse(message='Record soft-deleted', record=RecordResponse.model_validate(record))
