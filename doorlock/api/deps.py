from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from doorlock.core.exceptions import AuthError, ForbiddenError
from doorlock.core.security import device_key_matches
from doorlock.db.models import AuthSession, User
from doorlock.db.session import get_db
from doorlock.services import auth_service

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> tuple[User, AuthSession]:
    if not credentials:
        raise AuthError("Missing token")
    return auth_service.resolve_token(db, credentials.credentials)


def get_current_user(current: tuple[User, AuthSession] = Depends(get_current_session)) -> User:
    return current[0]


def require_roles(*roles: str):
    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role.value not in roles:
            raise ForbiddenError("Insufficient permissions")
        return user

    return dependency


def require_device(x_device_key: str | None = Header(default=None)) -> str:
    if not device_key_matches(x_device_key):
        raise AuthError("Invalid device key")
    return "device"
