from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doorlock.core.config import get_settings
from doorlock.core.exceptions import ConflictError, NotFoundError, ValidationError
from doorlock.core.security import generate_pin
from doorlock.db.models import AccessCode, CodeType, NfcRequest, RequestStatus, User

settings = get_settings()


def serialize_code(row: AccessCode) -> dict:
    return {
        "code": row.code,
        "type": row.type.value,
        "expiresAt": row.expires_at.isoformat(),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


def is_valid_pin(value: str) -> bool:
    return len(value) == settings.CODE_LENGTH and value.isascii() and value.isdigit()


def purge_expired_codes(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    result = db.execute(delete(AccessCode).where(AccessCode.expires_at <= now))
    db.commit()
    return int(result.rowcount or 0)


def create_code(db: Session, code: str, ttl_seconds: int, code_type: str, actor: str | None = None) -> AccessCode:
    if not isinstance(code, str) or not is_valid_pin(code):
        raise ValidationError(f"Code must be exactly {settings.CODE_LENGTH} digits")
    try:
        kind = CodeType(code_type)
    except ValueError as exc:
        raise ValidationError("Type must be 'otp' or 'static'") from exc
    if ttl_seconds < 1 or ttl_seconds > settings.MAX_CODE_TTL_SECONDS:
        raise ValidationError(f"ttlSeconds must be between 1 and {settings.MAX_CODE_TTL_SECONDS}")

    now = datetime.utcnow()
    purge_expired_codes(db, now)
    if pin_assigned(db, code, now):
        raise ConflictError("Code is already assigned as a guest PIN")

    row = AccessCode(
        code=code,
        type=kind,
        expires_at=now + timedelta(seconds=ttl_seconds),
        created_by=actor,
        created_at=now,
    )
    db.add(row)
    try:
        # The primary key makes concurrent creates of one value race to a single winner.
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Code already exists") from exc
    db.refresh(row)
    return row


def delete_code(db: Session, code: str) -> None:
    purge_expired_codes(db)
    result = db.execute(delete(AccessCode).where(AccessCode.code == code))
    db.commit()
    if not result.rowcount:
        raise NotFoundError("Code not found")


def list_active_codes(db: Session) -> list[AccessCode]:
    now = datetime.utcnow()
    return (
        db.query(AccessCode)
        .filter(AccessCode.expires_at > now)
        .order_by(AccessCode.expires_at.asc(), AccessCode.code.asc())
        .all()
    )


def find_active_code(db: Session, code: str) -> AccessCode | None:
    return (
        db.query(AccessCode)
        .filter(AccessCode.code == code, AccessCode.expires_at > datetime.utcnow())
        .first()
    )


def consume_otp(db: Session, code: str) -> bool:
    """Delete a one-time code; only one concurrent caller sees True."""
    result = db.execute(
        delete(AccessCode).where(
            AccessCode.code == code,
            AccessCode.type == CodeType.otp,
            AccessCode.expires_at > datetime.utcnow(),
        )
    )
    db.commit()
    return bool(result.rowcount)


def pin_in_use(db: Session, pin: str, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    if db.query(AccessCode).filter(AccessCode.code == pin, AccessCode.expires_at > now).first():
        return True
    return pin_assigned(db, pin, now)


def pin_assigned(db: Session, pin: str, now: datetime | None = None) -> bool:
    """True when a guest or a live approved request holds ``pin``."""
    now = now or datetime.utcnow()
    if db.query(User).filter(User.pin_code == pin).first():
        return True
    live_request = (
        db.query(NfcRequest)
        .filter(
            NfcRequest.pin_code == pin,
            NfcRequest.status == RequestStatus.approved,
            NfcRequest.expires_at > now,
        )
        .first()
    )
    return live_request is not None


def generate_unique_pin(db: Session, attempts: int = 50) -> str:
    for _ in range(attempts):
        candidate = generate_pin(settings.CODE_LENGTH)
        if not pin_in_use(db, candidate):
            return candidate
    raise ConflictError("Could not allocate a unique PIN")
