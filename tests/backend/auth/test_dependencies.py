from datetime import datetime, timedelta
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from backend.auth import jwt_handler
from backend.auth.call_links import issue_call_link
from backend.auth.dependencies import (
    ensure_doctor_access,
    ensure_participant,
    ensure_patient_access,
    get_current_user,
)
from backend.core.errors import AuthorizationError


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_get_current_user_resolves_token_subject(db_session, users) -> None:
    token = jwt_handler.create_access_token(subject=str(users.doctor.id))

    user = get_current_user(credentials=_credentials(token), db=db_session)

    assert user.id == users.doctor.id
    assert user.role == 'doctor'


def test_get_current_user_rejects_garbage_token(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials('not-a-jwt'), db=db_session)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_non_numeric_subject(db_session) -> None:
    token = jwt_handler.create_access_token(subject='someone@example.com')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=db_session)

    assert exception_info.value.detail == 'Invalid token subject'


def test_get_current_user_rejects_unknown_user(db_session) -> None:
    token = jwt_handler.create_access_token(subject='9999')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=db_session)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_get_current_user_rejects_call_link_token(db_session, users) -> None:
    link = issue_call_link(1, datetime.now() + timedelta(days=1), users.patient)
    token = parse_qs(urlparse(link).query)['token'][0]

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=db_session)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_patient_access_is_limited_to_self() -> None:
    ensure_patient_access(SimpleNamespace(id=1, role='patient'), 1)
    ensure_patient_access(SimpleNamespace(id=5, role='doctor'), 1)
    ensure_patient_access(SimpleNamespace(id=9, role='admin'), 1)

    with pytest.raises(AuthorizationError):
        ensure_patient_access(SimpleNamespace(id=2, role='patient'), 1)


def test_doctor_access_is_limited_to_the_doctor_and_admins() -> None:
    ensure_doctor_access(SimpleNamespace(id=5, role='doctor'), 5)
    ensure_doctor_access(SimpleNamespace(id=9, role='admin'), 5)

    for user in (SimpleNamespace(id=6, role='doctor'), SimpleNamespace(id=5, role='patient')):
        with pytest.raises(AuthorizationError):
            ensure_doctor_access(user, 5)


def test_participant_check_allows_patient_doctor_and_admin() -> None:
    ensure_participant(SimpleNamespace(id=1, role='patient'), 1, 5)
    ensure_participant(SimpleNamespace(id=5, role='doctor'), 1, 5)
    ensure_participant(SimpleNamespace(id=9, role='admin'), 1, 5)

    with pytest.raises(AuthorizationError) as exception_info:
        ensure_participant(SimpleNamespace(id=2, role='patient'), 1, 5)

    assert exception_info.value.status_code == 403
