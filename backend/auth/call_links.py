"""Call-access tokens for the video consultation attached to an appointment."""

import logging
from datetime import datetime, timedelta, timezone

import jwt

from backend.auth import jwt_handler
from backend.core import config

logger = logging.getLogger(__name__)

CALL_TOKEN_PURPOSE = 'video_call'
CALL_TOKEN_AUDIENCE = 'telehealth-call'


def call_link_expires_at(starts_at: datetime) -> datetime:
    return starts_at + timedelta(minutes=config.CALL_LINK_GRACE_MINUTES)


def issue_call_link(appointment_id: int, starts_at: datetime, user, now: datetime | None = None) -> str | None:
    """Return a call URL for ``user``, or None once the appointment's call window has closed."""
    now = now or datetime.now()
    expires_at = call_link_expires_at(starts_at)
    if now >= expires_at:
        logger.debug('Call link for appointment %s expired at %s', appointment_id, expires_at.isoformat())
        return None

    token = jwt_handler.encode_token(
        {
            'sub': str(user.id),
            'role': user.role,
            'appointment_id': appointment_id,
            'aud': CALL_TOKEN_AUDIENCE,
            'purpose': CALL_TOKEN_PURPOSE,
            'iat': now.astimezone(timezone.utc),
            'exp': expires_at.astimezone(timezone.utc),
        }
    )
    return f'{config.CALL_LINK_BASE_URL}/{appointment_id}?token={token}'


def decode_call_token(token: str) -> dict:
    payload = jwt_handler.decode_token(token, CALL_TOKEN_AUDIENCE)
    if payload.get('purpose') != CALL_TOKEN_PURPOSE:
        raise jwt.InvalidTokenError('Not a call-access token')
    return payload
