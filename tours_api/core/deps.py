from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from tours_api.core.errors import Forbidden, Unauthenticated
from tours_api.db.session import get_db
from tours_api.models.user import Role, User
from tours_api.services.auth import authenticate

bearer = HTTPBearer(auto_error=False)

def protect(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds or not creds.credentials:
        raise Unauthenticated("You are not logged in! Please log in to get access.")
    user = authenticate(db, creds.credentials)
    request.state.user = user
    return user

def restrict_to(*roles: Role):
    allowed = frozenset(Role(role) for role in roles)

    def _inner(user: User = Depends(protect)) -> User:
        try:
            role = Role(user.role)
        except ValueError:
            raise Forbidden()
        if role not in allowed:
            raise Forbidden()
        return user
    return _inner
