from datetime import datetime, timedelta
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import jwt
import pytest

from backend.auth import jwt_handler
from backend.auth.call_links import decode_call_token, issue_call_link
from backend.core import config

PATIENT = SimpleNamespace(id=3, role='patient')


def _token_from(link: str) -> str:
    return parse_qs(urlparse(link).query)['token'][0]


def test_issue_call_link_builds_url_for_appointment() -> None:
    starts_at = datetime.now() + timedelta(days=2)

    link = issue_call_link(17, starts_at, PATIENT)

    assert link.startswith(f'{config.CALL_LINK_BASE_URL}/17?token=')


def test_call_token_carries_appointment_and_caller() -> None:
    starts_at = datetime.now() + timedelta(days=2)

    payload = decode_call_token(_token_from(issue_call_link(17, starts_at, PATIENT)))

    assert payload['appointment_id'] == 17
    assert payload['sub'] == '3'
    assert payload['role'] == 'patient'
    assert payload['purpose'] == 'video_call'
    assert payload['aud'] == 'telehealth-call'


def test_call_link_is_available_during_grace_period() -> None:
    starts_at = datetime(2026, 1, 5, 9, 0)
    now = starts_at + timedelta(minutes=config.CALL_LINK_GRACE_MINUTES - 1)

    assert issue_call_link(1, starts_at, PATIENT, now=now) is not None


def test_call_link_expires_after_grace_period() -> None:
    starts_at = datetime(2026, 1, 5, 9, 0)
    now = starts_at + timedelta(minutes=config.CALL_LINK_GRACE_MINUTES)

    assert issue_call_link(1, starts_at, PATIENT, now=now) is None


def test_decode_call_token_rejects_plain_access_token() -> None:
    token = jwt_handler.create_access_token(subject='3', role='patient')

    with pytest.raises(jwt.InvalidTokenError):
        decode_call_token(token)
