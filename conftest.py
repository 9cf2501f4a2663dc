import os
from types import SimpleNamespace

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-for-pytest-only-0123456789')

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.core.cache import ResponseCache  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models import appointment, availability, notification, record  # noqa: E402,F401
from backend.models.user import User  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(ttl_seconds=30, clock=clock)


@pytest.fixture
def users(db_session):
    patient = User(name='Alice Patient', email='alice@example.com', role='patient')
    other_patient = User(name='Bob Patient', email='bob@example.com', role='patient')
    doctor = User(name='Grey', email='grey@clinic.example.com', role='doctor', specialty='Cardiology')
    other_doctor = User(name='House', email='house@clinic.example.com', role='doctor', specialty='Diagnostics')
    admin = User(name='Admin', email='admin@clinic.example.com', role='admin')
    db_session.add_all([patient, other_patient, doctor, other_doctor, admin])
    db_session.commit()
    for user in (patient, other_patient, doctor, other_doctor, admin):
        db_session.refresh(user)

    return SimpleNamespace(
        patient=patient,
        other_patient=other_patient,
        doctor=doctor,
        other_doctor=other_doctor,
        admin=admin,
    )
