from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from doorlock.api.deps import require_roles
from doorlock.api.routes.auth import login_as, register_guest_account
from doorlock.db.models import User
from doorlock.db.session import get_db
from doorlock.schemas.auth import GuestRegisterRequest, LoginRequest
from doorlock.schemas.guest import AccessRequestCreate
from doorlock.services import log_service, nfc_request_service
from doorlock.socket import notifier

router = APIRouter()


@router.post("/register", status_code=201)
async def register(payload: GuestRegisterRequest, db: Session = Depends(get_db)):
    return await register_guest_account(payload, db)


@router.post("/login")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    return login_as("guest", payload, request, db)


@router.post("/request-nfc", status_code=201)
async def request_access(
    payload: AccessRequestCreate,
    db: Session = Depends(get_db),
    guest: User = Depends(require_roles("guest")),
):
    row = nfc_request_service.submit_request(
        db,
        guest,
        reason=payload.reason,
        duration_hours=payload.durationHours,
        expires_at=payload.expiresAt,
    )
    await notifier.notify(notifier.NEW_NFC_REQUEST, {"guestName": guest.full_name, "requestId": row.id})
    return nfc_request_service.serialize_request(row)


@router.get("/my-requests")
def my_requests(
    db: Session = Depends(get_db),
    guest: User = Depends(require_roles("guest")),
):
    return [nfc_request_service.serialize_request(row) for row in nfc_request_service.list_guest_requests(db, guest.id)]


@router.get("/my-logs")
def my_logs(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    db: Session = Depends(get_db),
    guest: User = Depends(require_roles("guest")),
):
    return log_service.list_logs(db, page=page, limit=limit, user_id=guest.id)
