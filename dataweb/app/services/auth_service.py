"""Registration and login against the users table."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from dataweb.app.errors import AuthError, ConflictError, ValidationError
from dataweb.app.models.user import User
from dataweb.app.utils.security import create_access_token, hash_password, verify_password

logger = logging.getLogger("dataweb.auth")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 6


def _require_credentials(username: Any, password: Any) -> tuple[str, str]:
    if not username or not password or not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError("Username and password are required")
    return username, password


def register_user(db: DBSession, username: Any, password: Any) -> tuple[User, str]:
    username, password = _require_credentials(username, password)

    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters"
        )
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    existing = db.query(User).filter(User.username == username).first()
    if existing:
        raise ConflictError("Username already taken")

    user = User(username=username, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same name
        db.rollback()
        raise ConflictError("Username already taken")
    db.refresh(user)

    logger.info("Registered user id=%s", user.id)
    return user, create_access_token(user.id, user.username)


def authenticate_user(db: DBSession, username: Any, password: Any) -> tuple[User, str]:
    username, password = _require_credentials(username, password)

    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")

    return user, create_access_token(user.id, user.username)
