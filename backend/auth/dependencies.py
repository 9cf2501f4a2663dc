from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core.errors import AuthorizationError
from backend.database import get_db
from backend.models.user import User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.get(User, int(subject))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def is_participant(user, patient_id: int, doctor_id: int) -> bool:
    if user.role == 'admin':
        return True
    return user.id in (patient_id, doctor_id)


def ensure_participant(user, patient_id: int, doctor_id: int) -> None:
    if not is_participant(user, patient_id, doctor_id):
        raise AuthorizationError('Only participants of this appointment can access it')


def ensure_patient_access(user, patient_id: int) -> None:
    """Patients may only see their own data; doctors and admins may see any patient."""
    if user.role == 'patient' and user.id != patient_id:
        raise AuthorizationError()


def ensure_doctor_access(user, doctor_id: int) -> None:
    """Only the doctor themselves or an admin may see a doctor's schedule."""
    if user.role == 'admin':
        return
    if user.role != 'doctor' or user.id != doctor_id:
        raise AuthorizationError()
