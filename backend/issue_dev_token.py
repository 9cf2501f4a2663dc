"""Print a bearer token for an existing user, for local development.

Usage:
    python -m backend.issue_dev_token <user_id>
"""
import sys

from backend.auth import jwt_handler
from backend.core import config
from backend.database import SessionLocal
from backend.models.user import User


def main() -> None:
    if len(sys.argv) != 2 or not sys.argv[1].isdigit():
        print("Usage: python -m backend.issue_dev_token <user_id>", file=sys.stderr)
        sys.exit(2)

    if config.APP_ENV.lower() == "production":
        print("Refusing to issue development tokens in production.", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        user = db.get(User, int(sys.argv[1]))
    finally:
        db.close()

    if user is None:
        print(f"User {sys.argv[1]} not found.", file=sys.stderr)
        sys.exit(1)

    print(jwt_handler.create_access_token(subject=str(user.id), role=user.role))


if __name__ == "__main__":
    main()
