"""User model definitions."""

from sqlalchemy import JSON, Column, Integer, String
from sqlalchemy.orm import validates

from backend.database import Base

USER_ROLES = ('patient', 'doctor', 'admin')

# Optional profile attributes; anything outside this set is rejected.
PROFILE_FIELDS = frozenset({'phone', 'gender', 'dob', 'bio', 'languages'})


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    role = Column(String, nullable=False, default='patient', index=True)  # patient/doctor/admin
    specialty = Column(String, nullable=True)
    profile = Column(JSON, nullable=False, default=dict)

    @validates('role')
    def validate_role(self, _key, value: str) -> str:
        if value not in USER_ROLES:
            raise ValueError(f'Unknown role: {value}')
        return value

    @validates('profile')
    def validate_profile(self, _key, value: dict | None) -> dict:
        value = dict(value or {})
        unknown = set(value) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f'Unsupported profile fields: {", ".join(sorted(unknown))}')
        return value
