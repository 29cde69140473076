"""Credential matching for door unlocks.

Every attempt is written to the unlock log whatever the outcome. Matching is
exact on the presented value; a one-time code is consumed in the same step
that authorises it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from doorlock.core.exceptions import AuthError
from doorlock.db.models import (
    AccessType,
    ApprovalStatus,
    CodeType,
    NfcRequest,
    RequestStatus,
    UnlockLog,
    UnlockMethod,
    User,
    UserRole,
)
from doorlock.services import access_code_service, nfc_card_service
from doorlock.services.log_service import append_log

logger = logging.getLogger(__name__)

WEB = "web"
DEVICE = "device"


@dataclass
class UnlockResult:
    success: bool
    method: str
    log: UnlockLog
    guest_id: str | None = None
    consumed_code: bool = False


def _log_method(kind: str, channel: str) -> str:
    if channel == DEVICE:
        return UnlockMethod.esp32_nfc.value if kind == "nfc" else UnlockMethod.esp32_pin.value
    return UnlockMethod.nfc.value if kind == "nfc" else UnlockMethod.password.value


def _active_guest_query(db: Session):
    return db.query(User).filter(
        User.role == UserRole.guest,
        User.approval_status == ApprovalStatus.approved,
        User.is_active.is_(True),
    )


def _live_request_query(db: Session, now: datetime):
    return (
        db.query(NfcRequest)
        .join(User, User.id == NfcRequest.guest_id)
        .filter(
            NfcRequest.status == RequestStatus.approved,
            NfcRequest.expires_at > now,
            User.approval_status == ApprovalStatus.approved,
            User.is_active.is_(True),
        )
    )


def _match_pin(db: Session, value: str, now: datetime) -> tuple[bool, User | None, bool]:
    code = access_code_service.find_active_code(db, value)
    if code is not None:
        if code.type == CodeType.otp and not access_code_service.consume_otp(db, value):
            # Another attempt consumed it first.
            return False, None, False
        return True, None, code.type == CodeType.otp

    guest = _active_guest_query(db).filter(User.pin_code == value).first()
    if guest is not None:
        return True, guest, False

    request = (
        _live_request_query(db, now)
        .filter(NfcRequest.access_type == AccessType.pin, NfcRequest.pin_code == value)
        .first()
    )
    if request is not None:
        return True, request.guest, False
    return False, None, False


def _match_card(db: Session, value: str, now: datetime) -> tuple[bool, User | None, bool]:
    if nfc_card_service.find_card(db, value) is not None:
        return True, None, False

    request = (
        _live_request_query(db, now)
        .filter(NfcRequest.access_type == AccessType.nfc, NfcRequest.nfc_card_id == value)
        .first()
    )
    if request is not None:
        return True, request.guest, False
    return False, None, False


def _guess_kind(value: str) -> str:
    return "pin" if access_code_service.is_valid_pin(value) else "nfc"


def attempt_unlock(db: Session, value: str, channel: str = WEB, source: str | None = None) -> UnlockResult:
    """Try ``value`` as a PIN and then as a card id.

    ``source`` narrows the search for device reports (the keypad cannot send
    a card id); web attempts try both.
    """
    now = datetime.utcnow()
    presented = value if isinstance(value, str) else ""
    kinds = [source] if source in {"pin", "nfc"} else ["pin", "nfc"]

    matched_kind = None
    owner: User | None = None
    consumed = False
    if presented:
        for kind in kinds:
            matcher = _match_pin if kind == "pin" else _match_card
            ok, owner, consumed = matcher(db, presented, now)
            if ok:
                matched_kind = kind
                break

    kind = matched_kind or (source if source in {"pin", "nfc"} else _guess_kind(presented))
    log = append_log(
        db,
        method=_log_method(kind, channel),
        code=presented,
        success=matched_kind is not None,
        user_id=owner.id if owner else None,
        user_name=owner.full_name if owner else None,
    )
    logger.info(
        "unlock %s channel=%s method=%s user=%s",
        "granted" if matched_kind else "denied",
        channel,
        log.method,
        owner.username if owner else "-",
    )
    return UnlockResult(
        success=matched_kind is not None,
        method=kind,
        log=log,
        guest_id=owner.id if owner else None,
        consumed_code=consumed,
    )


def unlock_or_raise(result: UnlockResult) -> dict:
    if not result.success:
        raise AuthError("Unlock failed")
    return {"method": result.method}
