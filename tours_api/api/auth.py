from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tours_api.core.config import API_V1_PREFIX, settings
from tours_api.core.deps import protect
from tours_api.db.session import get_db
from tours_api.models.user import User
from tours_api.schemas.users import ForgotPasswordIn, LoginIn, ResetPasswordIn, SignupIn, UpdatePasswordIn
from tours_api.services.auth import (
    consume_password_reset_token,
    issue_credential,
    login,
    start_password_reset,
    verify_current_password,
)
from tours_api.services.serializers import user_to_dict
from tours_api.services.users import create_user, set_password

router = APIRouter()


def send_token(user: User, status_code: int) -> JSONResponse:
    token = issue_credential(user.id, password_version=user.password_version)
    response = JSONResponse(
        status_code=status_code,
        content={"status": "success", "token": token, "data": {"user": user_to_dict(user)}},
    )
    response.set_cookie(
        key=settings.JWT_COOKIE_NAME,
        value=token,
        max_age=settings.JWT_COOKIE_EXPIRES_IN_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return response


@router.post("/signup")
def signup(payload: SignupIn, db: Session = Depends(get_db)):
    user = create_user(db, name=payload.name, email=payload.email, password=payload.password)
    return send_token(user, 201)


@router.post("/login")
def login_user(payload: LoginIn, db: Session = Depends(get_db)):
    user = login(db, payload.email, payload.password)
    return send_token(user, 200)


@router.post("/forgotPassword")
def forgot_password(payload: ForgotPasswordIn, request: Request, db: Session = Depends(get_db)):
    reset_url_base = f"{str(request.base_url).rstrip('/')}{API_V1_PREFIX}/users/resetPassword"
    start_password_reset(db, payload.email, reset_url_base)
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/resetPassword/{token}")
def reset_password(token: str, payload: ResetPasswordIn, db: Session = Depends(get_db)):
    user = consume_password_reset_token(db, token)
    set_password(user, payload.password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return send_token(user, 200)


@router.patch("/updateMyPassword")
def update_my_password(payload: UpdatePasswordIn, user: User = Depends(protect), db: Session = Depends(get_db)):
    verify_current_password(user, payload.password_current)
    set_password(user, payload.password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return send_token(user, 200)
