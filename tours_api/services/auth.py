"""Credential issuance and verification plus the password-reset flow.

The password-reset token moves through two states: ``create_password_reset_token``
stores only the sha256 of a random token with a short expiry and returns the
plaintext for delivery; ``consume_password_reset_token`` clears the stored
hash the moment a matching row is found, whether or not it has expired, so a
token can be consumed at most once.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from tours_api.core.config import settings
from tours_api.core.errors import (
    ExpiredToken,
    Internal,
    InvalidOrExpiredToken,
    InvalidToken,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from tours_api.core.security import create_jwt, decode_jwt, generate_token_hex, sha256_hex, verify_password
from tours_api.models.common import as_utc, utcnow
from tours_api.models.user import User
from tours_api.services.email_service import EmailDeliveryError, send_email
from tours_api.services.users import active_users_query, get_active_user, get_active_user_by_email

logger = logging.getLogger("tours_api.auth")


def issue_credential(user_id: uuid.UUID | str, *, password_version: int = 0, now: datetime | None = None) -> str:
    return create_jwt(
        {"sub": str(user_id), "pwv": int(password_version or 0)},
        settings.JWT_SECRET,
        timedelta(minutes=settings.JWT_EXPIRES_IN_MINUTES),
        now=now,
    )


def verify_credential(token: str) -> dict:
    try:
        claims = decode_jwt(token, settings.JWT_SECRET)
    except ExpiredSignatureError as exc:
        logger.warning("auth rejected reason=expired_token")
        raise ExpiredToken() from exc
    except JWTError as exc:
        logger.warning("auth rejected reason=invalid_token error=%s", exc)
        raise InvalidToken() from exc
    if not claims.get("sub") or not isinstance(claims.get("iat"), int):
        logger.warning("auth rejected reason=invalid_token error=missing sub/iat claims")
        raise InvalidToken()
    return claims


def password_changed_after(user: User, issued_at: int) -> bool:
    changed_at = as_utc(user.password_changed_at)
    if changed_at is None:
        return False
    return int(issued_at) < int(changed_at.timestamp())


def credential_is_stale(user: User, claims: dict) -> bool:
    if int(claims.get("pwv") or 0) != (user.password_version or 0):
        return True
    return password_changed_after(user, claims["iat"])


def authenticate(db: Session, token: str) -> User:
    claims = verify_credential(token)
    user = get_active_user(db, claims["sub"])
    if user is None:
        logger.warning("auth rejected reason=user_missing sub=%s", claims["sub"])
        raise Unauthenticated("The user belonging to this token no longer exists.")
    if credential_is_stale(user, claims):
        logger.warning("auth rejected reason=stale_token sub=%s", claims["sub"])
        raise Unauthenticated("User recently changed password! Please log in again.")
    return user


def login(db: Session, email: str | None, password: str | None) -> User:
    if not str(email or "").strip() or not password:
        raise ValidationError("Please provide email and password!")
    user = get_active_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthenticated("Incorrect email or password")
    return user


def verify_current_password(user: User, password: str) -> None:
    if not verify_password(password, user.password_hash):
        raise Unauthenticated("Your current password is wrong.")


def create_password_reset_token(user: User, *, now: datetime | None = None) -> str:
    plain = generate_token_hex(32)
    user.password_reset_token = sha256_hex(plain)
    user.password_reset_expires = (now or utcnow()) + timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES)
    return plain


def clear_password_reset_token(user: User) -> None:
    user.password_reset_token = None
    user.password_reset_expires = None


def start_password_reset(db: Session, email: str, reset_url_base: str) -> None:
    user = get_active_user_by_email(db, email)
    if user is None:
        raise NotFound("There is no user with that email address.")

    plain = create_password_reset_token(user)
    db.add(user)
    db.commit()

    reset_url = f"{reset_url_base.rstrip('/')}/{plain}"
    message = (
        "Forgot your password? Submit a PATCH request with your new password and passwordConfirm to:\n"
        f"{reset_url}\n\nIf you didn't forget your password, please ignore this email!"
    )
    try:
        send_email(
            email=user.email,
            subject=f"Your password reset token (valid for {settings.PASSWORD_RESET_TTL_MINUTES} min)",
            message=message,
        )
    except EmailDeliveryError as exc:
        logger.error("password reset email failed user_id=%s error=%s", user.id, exc)
        clear_password_reset_token(user)
        db.add(user)
        db.commit()
        raise Internal("There was an error sending the email. Try again later!") from exc


def consume_password_reset_token(db: Session, plain: str, *, now: datetime | None = None) -> User:
    hashed = sha256_hex(plain)
    user = active_users_query(db).filter(User.password_reset_token == hashed).first()
    if user is None:
        raise InvalidOrExpiredToken()
    expires_at = as_utc(user.password_reset_expires)

    claimed = (
        db.query(User)
        .filter(User.id == user.id, User.password_reset_token == hashed)
        .update(
            {User.password_reset_token: None, User.password_reset_expires: None},
            synchronize_session=False,
        )
    )
    db.commit()
    if claimed != 1:
        raise InvalidOrExpiredToken()
    db.refresh(user)
    if expires_at is None or expires_at <= (now or utcnow()):
        logger.info("password reset token expired user_id=%s", user.id)
        raise InvalidOrExpiredToken()
    return user
