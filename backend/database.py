from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False
_record_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_availability_doctor_date ON availability(doctor_id, date)')
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    """Backfill the active-slot unique index on tables created before it existed."""
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    "ON appointments(doctor_id, date, time) WHERE status != 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date, time)')
            )

        _appointment_schema_checked = True


def ensure_record_schema() -> None:
    """Backfill the soft-delete and audit columns on records tables that predate them."""
    global _record_schema_checked

    if _record_schema_checked:
        return

    with _schema_lock:
        if _record_schema_checked:
            return

        inspector = inspect(engine)

        if 'records' not in inspector.get_table_names():
            _record_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('records')}
        migration_steps = [
            ('last_updated_by', 'ALTER TABLE records ADD COLUMN last_updated_by INTEGER'),
            ('is_deleted', 'ALTER TABLE records ADD COLUMN is_deleted BOOLEAN NOT NULL DEFAULT FALSE'),
            ('deleted_by', 'ALTER TABLE records ADD COLUMN deleted_by INTEGER'),
            ('deleted_at', 'ALTER TABLE records ADD COLUMN deleted_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS ix_records_patient_id ON records(patient_id)')
            )

        _record_schema_checked = True
