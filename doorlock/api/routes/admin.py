import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from doorlock.api.deps import require_roles
from doorlock.db.models import User
from doorlock.db.session import get_db
from doorlock.schemas.guest import AccessRequestRespond, GuestApproval, PinAssign, ScanArm
from doorlock.services import guest_service, nfc_request_service
from doorlock.services.audit_service import list_audit_logs, write_audit_log
from doorlock.services.scan_service import PURPOSE_REQUEST, scan_registry
from doorlock.socket import notifier

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/guests")
def admin_list_guests(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return [guest_service.serialize_guest(row) for row in guest_service.list_guests(db)]


@router.get("/guests/pending")
def admin_pending_guests(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return [guest_service.serialize_guest(row) for row in guest_service.list_pending_guests(db)]


@router.post("/guests/{guest_id}/approve")
async def admin_decide_guest(
    guest_id: str,
    payload: GuestApproval | None = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    action = payload.action if payload else "approve"
    row = guest_service.decide_guest(db, guest_id, action, actor=admin.username)
    write_audit_log(db, actor=admin.username, action=f"guest.{action}", resource_type="user", resource_id=row.id)
    await notifier.notify(
        notifier.USER_APPROVAL_UPDATE,
        {"username": row.username, "action": action, "approved_by": admin.username},
        guest_id=row.id,
    )
    return guest_service.serialize_guest(row)


@router.post("/guests/{guest_id}/toggle")
async def admin_toggle_guest(
    guest_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = guest_service.toggle_guest(db, guest_id)
    action = "activate" if row.is_active else "deactivate"
    write_audit_log(db, actor=admin.username, action=f"guest.{action}", resource_type="user", resource_id=row.id)
    await notifier.notify(
        notifier.USER_APPROVAL_UPDATE,
        {"username": row.username, "action": action, "approved_by": admin.username},
        guest_id=row.id,
    )
    return guest_service.serialize_guest(row)


@router.delete("/guests/{guest_id}")
async def admin_delete_guest(
    guest_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    deleted = guest_service.delete_guest(db, guest_id)
    write_audit_log(db, actor=admin.username, action="guest.delete", resource_type="user", resource_id=deleted["id"])
    await notifier.notify(notifier.USER_DELETED, {"username": deleted["username"], "deleted_by": admin.username})
    return {"message": f"Guest {deleted['username']} deleted"}


@router.post("/guests/{guest_id}/assign-pin")
async def admin_assign_pin(
    guest_id: str,
    payload: PinAssign | None = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = guest_service.assign_pin(db, guest_id, payload.pin if payload else None)
    write_audit_log(db, actor=admin.username, action="guest.assign_pin", resource_type="user", resource_id=row.id)
    await notifier.notify(notifier.PASSWORD_UPDATE)
    return {"id": row.id, "username": row.username, "pinCode": row.pin_code}


@router.delete("/guests/{guest_id}/pin")
async def admin_remove_pin(
    guest_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = guest_service.remove_pin(db, guest_id)
    write_audit_log(db, actor=admin.username, action="guest.remove_pin", resource_type="user", resource_id=row.id)
    await notifier.notify(notifier.PASSWORD_UPDATE)
    return {"message": f"PIN removed for {row.username}"}


@router.get("/nfc-requests")
def admin_list_requests(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return [
        nfc_request_service.serialize_request(row, include_guest=True)
        for row in nfc_request_service.list_all_requests(db)
    ]


@router.post("/nfc-request/{request_id}/respond")
async def admin_respond_request(
    request_id: str,
    payload: AccessRequestRespond,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = nfc_request_service.respond_to_request(
        db,
        request_id,
        action=payload.action,
        actor=admin.username,
        access_type=payload.accessType,
        nfc_card_id=payload.nfcCardId,
        admin_notes=payload.adminNotes,
    )
    armed = scan_registry.peek()
    if armed is not None and armed.request_id == row.id:
        scan_registry.cancel(armed.scan_id)

    write_audit_log(
        db,
        actor=admin.username,
        action=f"request.{payload.action}",
        resource_type="nfc_request",
        resource_id=row.id,
        meta={"accessType": row.access_type.value if row.access_type else None},
    )
    await notifier.notify(
        notifier.NFC_REQUEST_RESPONDED,
        {"guestName": row.guest.full_name, "status": row.status.value, "requestId": row.id},
        guest_id=row.guest_id,
    )
    return nfc_request_service.serialize_request(row, include_guest=True)


@router.post("/scan-nfc")
def admin_scan_nfc(
    payload: ScanArm,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = nfc_request_service.ensure_pending(db, payload.requestId)
    scan = scan_registry.arm(PURPOSE_REQUEST, armed_by=admin.username, request_id=row.id)
    logger.info("reader armed for request=%s scan_id=%s by=%s", row.id, scan.scan_id, admin.username)
    return {
        "message": "Reader armed. Present the card to the door reader.",
        **scan.to_dict(),
    }


@router.get("/audit-logs")
def admin_audit_logs(
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return list_audit_logs(db, limit=limit)
