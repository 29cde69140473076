"""Endpoints called by the door controller firmware."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from doorlock.api.deps import require_device
from doorlock.api.routes.access import publish_unlock
from doorlock.core.exceptions import AppException, ValidationError
from doorlock.db.session import get_db
from doorlock.schemas.device import DeviceUnlock, NfcScanned, PinEntered
from doorlock.services import nfc_card_service, nfc_request_service, unlock_service
from doorlock.services.audit_service import write_audit_log
from doorlock.services.scan_service import PURPOSE_ENROLL, PURPOSE_REQUEST, scan_registry
from doorlock.socket import notifier

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/scan-status")
def scan_status(_: str = Depends(require_device)):
    armed = scan_registry.peek()
    if armed is None:
        return {"armed": False}
    return {"armed": True, **armed.to_dict()}


@router.post("/nfc-scanned")
async def nfc_scanned(
    payload: NfcScanned,
    db: Session = Depends(get_db),
    _: str = Depends(require_device),
):
    card_id = nfc_card_service.normalize_card_id(payload.nfcId)
    if not card_id:
        raise ValidationError("nfcId is required")

    scan = scan_registry.complete()
    notice = {"nfcId": card_id}
    result: dict = {"armed": scan is not None, "nfcId": card_id}

    if scan is not None:
        notice["scanId"] = scan.scan_id
        result["purpose"] = scan.purpose
        try:
            if scan.purpose == PURPOSE_ENROLL:
                row = nfc_card_service.enroll_card(db, card_id, actor=scan.armed_by)
                write_audit_log(db, actor=scan.armed_by, action="card.enroll", resource_type="nfc_card", resource_id=row.id)
                result["enrolled"] = True
            elif scan.purpose == PURPOSE_REQUEST:
                nfc_request_service.record_scanned_card(db, scan.request_id, card_id)
                notice["requestId"] = scan.request_id
                result["requestId"] = scan.request_id
        except AppException as exc:
            # The scan is spent either way; the admin sees the error in the notice.
            logger.warning("scan %s for %s failed: %s", scan.scan_id, scan.purpose, exc.message)
            notice["error"] = exc.message
            result["error"] = exc.message

    await notifier.notify(notifier.NFC_DETECTED, notice)
    if result.get("enrolled"):
        await notifier.notify(notifier.NFC_UPDATE)
    return result


@router.post("/pin-entered")
async def pin_entered(payload: PinEntered, _: str = Depends(require_device)):
    await notifier.notify(notifier.PIN_ENTERED, {"pin": payload.pin})
    return {"ok": True}


@router.post("/unlock")
async def device_unlock(
    payload: DeviceUnlock,
    db: Session = Depends(get_db),
    _: str = Depends(require_device),
):
    if payload.source not in {"pin", "nfc"}:
        raise ValidationError("source must be 'pin' or 'nfc'")
    result = unlock_service.attempt_unlock(
        db,
        payload.code.strip(),
        channel=unlock_service.DEVICE,
        source=payload.source,
    )
    await publish_unlock(result)
    return unlock_service.unlock_or_raise(result)
