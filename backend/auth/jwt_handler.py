from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

ACCESS_TOKEN_AUDIENCE = 'telehealth-api'


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "aud": ACCESS_TOKEN_AUDIENCE,
        "exp": issued_at + timedelta(minutes=expire_minutes),
        "iat": issued_at,
    }
    if role:
        payload["role"] = role
    return encode_token(payload)


def encode_token(payload: dict) -> str:
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, audience: str) -> dict:
    """Decode ``token``, rejecting it unless its ``aud`` claim is exactly ``audience``."""
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM], audience=audience)


def decode_access_token(token: str) -> dict:
    return decode_token(token, ACCESS_TOKEN_AUDIENCE)
