from collections.abc import Iterable

from sqlalchemy.orm import Session

from backend.models.user import User


def get_users_by_id(db: Session, user_ids: Iterable[int]) -> dict[int, User]:
    """Resolve a set of user ids with a single query."""
    unique_ids = {user_id for user_id in user_ids if user_id is not None}
    if not unique_ids:
        return {}

    users = db.query(User).filter(User.id.in_(unique_ids)).all()
    return {user.id: user for user in users}
