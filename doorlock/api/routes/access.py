import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from doorlock.api.deps import require_roles
from doorlock.db.models import User
from doorlock.db.session import get_db
from doorlock.schemas.access import CardDisenroll, CardEnroll, CodeCreate, CodeDelete, UnlockRequest
from doorlock.services import access_code_service, log_service, nfc_card_service, unlock_service
from doorlock.services.audit_service import write_audit_log
from doorlock.services.scan_service import PURPOSE_ENROLL, scan_registry
from doorlock.socket import notifier

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/create-code", status_code=201)
async def create_code(
    payload: CodeCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    row = access_code_service.create_code(db, payload.code, payload.ttlSeconds, payload.type, actor=admin.username)
    write_audit_log(
        db,
        actor=admin.username,
        action="code.create",
        resource_type="access_code",
        resource_id=row.code,
        meta={"type": row.type.value, "ttlSeconds": payload.ttlSeconds},
    )
    await notifier.notify(notifier.PASSWORD_UPDATE)
    return access_code_service.serialize_code(row)


@router.post("/delete-code")
async def delete_code(
    payload: CodeDelete,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    access_code_service.delete_code(db, payload.code)
    write_audit_log(db, actor=admin.username, action="code.delete", resource_type="access_code", resource_id=payload.code)
    await notifier.notify(notifier.PASSWORD_UPDATE)
    return {"message": f"Code {payload.code} deleted"}


@router.get("/active-passwords")
def active_passwords(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return [access_code_service.serialize_code(row) for row in access_code_service.list_active_codes(db)]


@router.post("/enroll")
async def enroll(
    payload: CardEnroll,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    card_id = nfc_card_service.normalize_card_id(payload.id)
    if not card_id:
        scan = scan_registry.arm(PURPOSE_ENROLL, armed_by=admin.username)
        logger.info("reader armed for enrolment scan_id=%s by=%s", scan.scan_id, admin.username)
        return {
            "id": None,
            "scanId": scan.scan_id,
            "message": "Reader armed. Present the card to the door reader.",
        }

    row = nfc_card_service.enroll_card(db, card_id, actor=admin.username)
    write_audit_log(db, actor=admin.username, action="card.enroll", resource_type="nfc_card", resource_id=row.id)
    await notifier.notify(notifier.NFC_UPDATE)
    return {**nfc_card_service.serialize_card(row), "message": f"Card {row.id} enrolled"}


@router.post("/disenroll")
async def disenroll(
    payload: CardDisenroll,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    nfc_card_service.disenroll_card(db, payload.id)
    write_audit_log(db, actor=admin.username, action="card.disenroll", resource_type="nfc_card", resource_id=payload.id)
    await notifier.notify(notifier.NFC_UPDATE)
    return {"message": f"Card {payload.id} disenrolled"}


@router.get("/active-nfc-cards")
def active_nfc_cards(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return [nfc_card_service.serialize_card(row) for row in nfc_card_service.list_active_cards(db)]


async def publish_unlock(result: unlock_service.UnlockResult) -> None:
    await notifier.notify(notifier.NEW_LOG, log_service.serialize_log(result.log), guest_id=result.guest_id)
    if result.consumed_code:
        await notifier.notify(notifier.PASSWORD_UPDATE)


@router.post("/unlock")
async def unlock(
    payload: UnlockRequest,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    result = unlock_service.attempt_unlock(db, payload.code, channel=unlock_service.WEB)
    await publish_unlock(result)
    return unlock_service.unlock_or_raise(result)


@router.get("/logs")
def logs(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    sortBy: str = Query(default="time"),
    sortOrder: str = Query(default="desc"),
    filterBy: str | None = Query(default=None),
    filterValue: str | None = Query(default=None),
    startDate: str | None = Query(default=None),
    endDate: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return log_service.list_logs(
        db,
        page=page,
        limit=limit,
        sort_by=sortBy,
        sort_order=sortOrder,
        filter_by=filterBy or None,
        filter_value=filterValue,
        start_date=startDate,
        end_date=endDate,
    )
