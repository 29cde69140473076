from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doorlock.core.config import get_settings
from doorlock.core.exceptions import ConflictError, NotFoundError, ValidationError
from doorlock.db.models import ApprovalStatus, User, UserRole
from doorlock.services import access_code_service
from doorlock.services.auth_service import revoke_user_sessions

settings = get_settings()

APPROVAL_ACTIONS = {"approve": ApprovalStatus.approved, "reject": ApprovalStatus.rejected}


def serialize_guest(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "fullName": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "isActive": bool(user.is_active),
        "approvalStatus": user.approval_status.value,
        "approvedBy": user.approved_by,
        "approvedAt": user.approved_at.isoformat() if user.approved_at else None,
        "pinCode": user.pin_code,
    }


def guest_summary(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "fullName": user.full_name,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def get_guest(db: Session, guest_id: str) -> User:
    user = db.query(User).filter(User.id == guest_id, User.role == UserRole.guest).first()
    if not user:
        raise NotFoundError("Guest not found")
    return user


def list_guests(db: Session) -> list[User]:
    return (
        db.query(User)
        .filter(User.role == UserRole.guest)
        .order_by(User.created_at.desc(), User.username.asc())
        .all()
    )


def list_pending_guests(db: Session) -> list[User]:
    return (
        db.query(User)
        .filter(User.role == UserRole.guest, User.approval_status == ApprovalStatus.pending)
        .order_by(User.created_at.asc(), User.username.asc())
        .all()
    )


def decide_guest(db: Session, guest_id: str, action: str, actor: str) -> User:
    status = APPROVAL_ACTIONS.get(action)
    if status is None:
        raise ValidationError("Action must be 'approve' or 'reject'")

    user = get_guest(db, guest_id)
    if user.approval_status != ApprovalStatus.pending:
        raise ConflictError(f"Guest is already {user.approval_status.value}")

    user.approval_status = status
    user.approved_by = actor
    user.approved_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user


def toggle_guest(db: Session, guest_id: str) -> User:
    user = get_guest(db, guest_id)
    if user.approval_status != ApprovalStatus.approved:
        raise ConflictError("Only approved guests can be enabled or disabled")
    user.is_active = not user.is_active
    db.commit()
    db.refresh(user)
    if not user.is_active:
        revoke_user_sessions(db, user.id)
    return user


def delete_guest(db: Session, guest_id: str) -> dict[str, Any]:
    user = get_guest(db, guest_id)
    snapshot = guest_summary(user)
    db.delete(user)
    db.commit()
    return snapshot


def assign_pin(db: Session, guest_id: str, pin: str | None = None) -> User:
    user = get_guest(db, guest_id)
    if user.approval_status != ApprovalStatus.approved:
        raise ConflictError("PINs can only be assigned to approved guests")

    if pin:
        if not access_code_service.is_valid_pin(pin):
            raise ValidationError(f"PIN must be exactly {settings.CODE_LENGTH} digits")
        if pin != user.pin_code and access_code_service.pin_in_use(db, pin):
            raise ConflictError("PIN is already in use")
        new_pin = pin
    else:
        new_pin = access_code_service.generate_unique_pin(db)

    user.pin_code = new_pin
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("PIN is already in use") from exc
    db.refresh(user)
    return user


def remove_pin(db: Session, guest_id: str) -> User:
    user = get_guest(db, guest_id)
    if not user.pin_code:
        raise NotFoundError("Guest has no PIN assigned")
    user.pin_code = None
    db.commit()
    db.refresh(user)
    return user
