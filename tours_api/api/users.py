from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from tours_api.core.deps import protect, restrict_to
from tours_api.core.errors import ValidationError
from tours_api.db.session import get_db
from tours_api.models.user import Role, User
from tours_api.schemas.users import UpdateMeIn, UserAdminPatch
from tours_api.services.query_features import QueryFeatures, parse_query_params
from tours_api.services.serializers import USER_HIDDEN_FIELDS, USER_PROTECTED_FIELDS, user_to_dict
from tours_api.services.users import (
    UPDATE_ME_FIELDS,
    active_users_query,
    apply_profile_changes,
    deactivate_user,
    require_active_user,
)

router = APIRouter()

admin_only = restrict_to(Role.ADMIN)
_PASSWORD_KEYS = {"password", "passwordConfirm", "password_confirm"}


def _user_envelope(user: User) -> dict:
    return {"status": "success", "data": {"user": user_to_dict(user)}}


@router.get("/me")
def get_me(user: User = Depends(protect)):
    return _user_envelope(user)


@router.patch("/updateMe")
def update_me(payload: UpdateMeIn, user: User = Depends(protect), db: Session = Depends(get_db)):
    if _PASSWORD_KEYS & set(payload.model_extra or {}):
        raise ValidationError("This route is not for password updates. Please use /updateMyPassword.")
    changes = payload.model_dump(include=set(UPDATE_ME_FIELDS), exclude_unset=True)
    apply_profile_changes(user, changes)
    db.add(user)
    db.commit()
    db.refresh(user)
    return _user_envelope(user)


@router.delete("/deleteMe", status_code=204)
def delete_me(user: User = Depends(protect), db: Session = Depends(get_db)):
    deactivate_user(db, user)
    return Response(status_code=204)


@router.get("")
def get_all_users(request: Request, db: Session = Depends(get_db), admin: User = Depends(admin_only)):
    features = (
        QueryFeatures(
            active_users_query(db),
            User,
            parse_query_params(request.query_params.multi_items()),
            protected_fields=USER_PROTECTED_FIELDS,
            hidden_fields=USER_HIDDEN_FIELDS,
        )
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    rows = features.query.all()
    return {
        "status": "success",
        "results": len(rows),
        "data": {"users": [user_to_dict(row, features.output_fields) for row in rows]},
    }


@router.get("/{id}")
def get_user(id: str, db: Session = Depends(get_db), admin: User = Depends(admin_only)):
    return _user_envelope(require_active_user(db, id))


@router.patch("/{id}")
def update_user(id: str, payload: UserAdminPatch, db: Session = Depends(get_db), admin: User = Depends(admin_only)):
    user = require_active_user(db, id)
    apply_profile_changes(user, payload.model_dump(exclude_unset=True))
    db.add(user)
    db.commit()
    db.refresh(user)
    return _user_envelope(user)


@router.delete("/{id}", status_code=204)
def delete_user(id: str, db: Session = Depends(get_db), admin: User = Depends(admin_only)):
    user = require_active_user(db, id)
    db.delete(user)
    db.commit()
    return Response(status_code=204)
