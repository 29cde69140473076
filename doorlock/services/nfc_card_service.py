from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doorlock.core.exceptions import ConflictError, NotFoundError, ValidationError
from doorlock.db.models import NfcCard

MAX_CARD_ID_LENGTH = 64


def normalize_card_id(raw: str | None) -> str:
    # Only surrounding whitespace is dropped; unlock matching is case exact.
    return (raw or "").strip()


def serialize_card(row: NfcCard) -> dict:
    return {"id": row.id, "enrolledAt": row.enrolled_at.isoformat()}


def enroll_card(db: Session, card_id: str, actor: str | None = None) -> NfcCard:
    normalized = normalize_card_id(card_id)
    if not normalized:
        raise ValidationError("Card id is required")
    if len(normalized) > MAX_CARD_ID_LENGTH:
        raise ValidationError("Card id is too long")

    if db.query(NfcCard).filter(NfcCard.id == normalized).first():
        raise ConflictError("Card already enrolled")

    row = NfcCard(id=normalized, enrolled_by=actor)
    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Card already enrolled") from exc
    db.refresh(row)
    return row


def disenroll_card(db: Session, card_id: str) -> None:
    row = db.query(NfcCard).filter(NfcCard.id == normalize_card_id(card_id)).first()
    if not row:
        raise NotFoundError("Card not found")
    db.delete(row)
    db.commit()


def list_active_cards(db: Session) -> list[NfcCard]:
    return db.query(NfcCard).order_by(NfcCard.enrolled_at.asc(), NfcCard.id.asc()).all()


def find_card(db: Session, card_id: str) -> NfcCard | None:
    return db.query(NfcCard).filter(NfcCard.id == card_id).first()
