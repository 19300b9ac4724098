from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from tours_api.core.errors import NotFound, ValidationError
from tours_api.core.security import hash_password
from tours_api.models.common import utcnow
from tours_api.models.user import Role, User

UPDATE_ME_FIELDS = ("name", "email", "photo")


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def active_users_query(db: Session) -> Query:
    """Soft-deleted users are invisible to every lookup."""
    return db.query(User).filter(User.active.is_(True))


def get_active_user(db: Session, user_id) -> User | None:
    if isinstance(user_id, uuid.UUID):
        uid = user_id
    else:
        try:
            uid = uuid.UUID(str(user_id or "").strip())
        except ValueError:
            return None
    return active_users_query(db).filter(User.id == uid).first()


def require_active_user(db: Session, user_id) -> User:
    user = get_active_user(db, user_id)
    if user is None:
        raise NotFound("No user found with that ID")
    return user


def get_active_user_by_email(db: Session, email: str | None) -> User | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    return active_users_query(db).filter(func.lower(User.email) == normalized).first()


def set_password(user: User, password: str, *, now: datetime | None = None) -> None:
    user.password_hash = hash_password(password)
    if user.id is not None:
        # Credentials carry the version they were issued under; bumping it
        # retires every credential issued before this change.
        user.password_version = (user.password_version or 0) + 1
        user.password_changed_at = now or utcnow()


def create_user(db: Session, *, name: str, email: str, password: str, role: Role = Role.USER) -> User:
    user = User(name=name.strip(), email=normalize_email(email), role=Role(role).value, active=True, password_version=0)
    set_password(user, password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def apply_profile_changes(user: User, changes: dict) -> User:
    for key, value in changes.items():
        if key in {"name", "email"} and value is None:
            raise ValidationError(f"Invalid input data. Field {key} cannot be null.")
        if key == "email":
            value = normalize_email(value)
        elif key == "name":
            value = str(value).strip()
        elif key == "role" and value is not None:
            value = Role(value).value
        setattr(user, key, value)
    return user


def deactivate_user(db: Session, user: User) -> None:
    user.active = False
    db.add(user)
    db.commit()
