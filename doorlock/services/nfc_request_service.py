"""Guest access-grant requests.

A request is answered at most once. Pending requests whose window lapses are
marked ``expired`` when next read; an approved request keeps its status and
the unlock check enforces ``expires_at``.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from doorlock.core.config import get_settings
from doorlock.core.exceptions import AuthError, ConflictError, NotFoundError, ValidationError
from doorlock.db.models import AccessType, NfcRequest, RequestStatus, User
from doorlock.services import access_code_service, nfc_card_service

settings = get_settings()
logger = logging.getLogger(__name__)

RESPONSE_ACTIONS = {"approve": RequestStatus.approved, "reject": RequestStatus.rejected}


def serialize_request(row: NfcRequest, include_guest: bool = False) -> dict[str, Any]:
    data = {
        "id": row.id,
        "guestId": row.guest_id,
        "reason": row.reason,
        "requestedAt": row.requested_at.isoformat(),
        "expiresAt": row.expires_at.isoformat(),
        "status": row.status.value,
        "adminNotes": row.admin_notes,
        "approvedBy": row.approved_by,
        "approvedAt": row.approved_at.isoformat() if row.approved_at else None,
        "accessType": row.access_type.value if row.access_type else None,
        "nfcCardId": row.nfc_card_id,
        "pinCode": row.pin_code,
        "scannedNfcId": row.scanned_nfc_id,
    }
    if include_guest and row.guest is not None:
        data["guestName"] = row.guest.full_name
        data["guestUsername"] = row.guest.username
    return data


def expire_lapsed_requests(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    result = db.execute(
        update(NfcRequest)
        .where(NfcRequest.status == RequestStatus.pending, NfcRequest.expires_at <= now)
        .values(status=RequestStatus.expired)
    )
    db.commit()
    return int(result.rowcount or 0)


def submit_request(
    db: Session,
    guest: User,
    reason: str,
    duration_hours: int | None = None,
    expires_at: datetime | None = None,
) -> NfcRequest:
    if not guest.can_authenticate:
        raise AuthError("Guest account is not approved")

    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise ValidationError("Reason is required")

    now = datetime.utcnow()
    if duration_hours is not None:
        if duration_hours < 1 or duration_hours > settings.MAX_REQUEST_HOURS:
            raise ValidationError(f"Duration must be between 1 and {settings.MAX_REQUEST_HOURS} hours")
        window_end = now + timedelta(hours=duration_hours)
    else:
        window_end = expires_at
        if window_end.tzinfo is not None:
            window_end = window_end.astimezone(timezone.utc).replace(tzinfo=None)
        if window_end <= now:
            raise ValidationError("Expiry must be in the future")
        if window_end > now + timedelta(hours=settings.MAX_REQUEST_HOURS):
            raise ValidationError(f"Requests may span at most {settings.MAX_REQUEST_HOURS} hours")

    row = NfcRequest(
        guest_id=guest.id,
        reason=cleaned_reason,
        requested_at=now,
        expires_at=window_end,
        status=RequestStatus.pending,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_all_requests(db: Session) -> list[NfcRequest]:
    expire_lapsed_requests(db)
    return db.query(NfcRequest).order_by(NfcRequest.requested_at.desc(), NfcRequest.id.asc()).all()


def list_guest_requests(db: Session, guest_id: str) -> list[NfcRequest]:
    expire_lapsed_requests(db)
    return (
        db.query(NfcRequest)
        .filter(NfcRequest.guest_id == guest_id)
        .order_by(NfcRequest.requested_at.desc(), NfcRequest.id.asc())
        .all()
    )


def get_request(db: Session, request_id: str) -> NfcRequest:
    row = db.query(NfcRequest).filter(NfcRequest.id == request_id).first()
    if not row:
        raise NotFoundError("Request not found")
    return row


def ensure_pending(db: Session, request_id: str) -> NfcRequest:
    expire_lapsed_requests(db)
    row = get_request(db, request_id)
    if row.status != RequestStatus.pending:
        raise ConflictError(f"Request is already {row.status.value}")
    return row


def record_scanned_card(db: Session, request_id: str, card_id: str) -> NfcRequest:
    row = ensure_pending(db, request_id)
    row.scanned_nfc_id = card_id
    db.commit()
    db.refresh(row)
    return row


def respond_to_request(
    db: Session,
    request_id: str,
    action: str,
    actor: str,
    access_type: str | None = None,
    nfc_card_id: str | None = None,
    admin_notes: str | None = None,
) -> NfcRequest:
    status = RESPONSE_ACTIONS.get(action)
    if status is None:
        raise ValidationError("Action must be 'approve' or 'reject'")

    row = ensure_pending(db, request_id)
    values: dict[str, Any] = {
        "status": status,
        "admin_notes": (admin_notes or "").strip() or None,
        "approved_by": actor,
        "approved_at": datetime.utcnow(),
    }

    if status == RequestStatus.approved:
        try:
            kind = AccessType(access_type or "")
        except ValueError as exc:
            raise ValidationError("accessType must be 'pin' or 'nfc'") from exc

        values["access_type"] = kind
        if kind == AccessType.nfc:
            card_id = nfc_card_service.normalize_card_id(nfc_card_id) or row.scanned_nfc_id
            if not card_id:
                raise ValidationError("nfcCardId is required; scan a card or enter its id")
            values["nfc_card_id"] = card_id
        else:
            values["pin_code"] = access_code_service.generate_unique_pin(db)

    # Guarded on the pending status so a concurrent response cannot also apply.
    result = db.execute(
        update(NfcRequest)
        .where(NfcRequest.id == row.id, NfcRequest.status == RequestStatus.pending)
        .values(**values)
    )
    db.commit()
    if not result.rowcount:
        raise ConflictError("Request has already been answered")

    db.refresh(row)
    logger.info("request %s %s by %s", row.id, row.status.value, actor)
    return row
