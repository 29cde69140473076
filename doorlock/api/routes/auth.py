from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from doorlock.api.deps import bearer_scheme, get_current_session
from doorlock.db.session import get_db
from doorlock.schemas.auth import GuestRegisterRequest, LoginRequest
from doorlock.services import auth_service
from doorlock.services.guest_service import guest_summary
from doorlock.socket import notifier

router = APIRouter()


def _client_meta(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent", ""),
        "ip_address": request.client.host if request.client else "",
    }


def login_as(role: str, payload: LoginRequest, request: Request, db: Session) -> dict:
    data = auth_service.login(
        db=db,
        username=payload.username,
        password=payload.password,
        role=role,
        **_client_meta(request),
    )
    return data.model_dump()


async def register_guest_account(payload: GuestRegisterRequest, db: Session) -> dict:
    user = auth_service.register_guest(db, payload)
    await notifier.notify(notifier.NEW_USER_REGISTRATION, guest_summary(user))
    return {
        "success": True,
        "requiresApproval": True,
        "message": "Registration successful. Your account is pending admin approval.",
        "user": guest_summary(user),
    }


@router.post("/admin/login")
def admin_login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    return login_as("admin", payload, request, db)


@router.post("/guest/login")
def guest_login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    return login_as("guest", payload, request, db)


@router.post("/guest/register", status_code=201)
async def guest_register(payload: GuestRegisterRequest, db: Session = Depends(get_db)):
    return await register_guest_account(payload, db)


@router.post("/verify")
def verify(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
):
    return auth_service.verify_token(db, credentials.credentials if credentials else None)


@router.post("/refresh")
def refresh(current=Depends(get_current_session), db: Session = Depends(get_db)):
    user, session = current
    token = auth_service.refresh(db, user, session)
    return {"success": True, "token": token}


@router.post("/logout")
def logout(current=Depends(get_current_session), db: Session = Depends(get_db)):
    _, session = current
    auth_service.logout(db, session)
    return {"success": True}
