import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doorlock.core.config import get_settings
from doorlock.core.exceptions import AuthError, ConflictError, ValidationError
from doorlock.core.security import create_session_token, decode_session_token, hash_password, verify_password
from doorlock.db.models import ApprovalStatus, AuthSession, User, UserRole
from doorlock.schemas.auth import AuthResponse, GuestRegisterRequest

settings = get_settings()
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "fullName": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "type": user.role.value,
        "role": user.role.value,
    }


def _issue_token(db: Session, user: User, user_agent: str = "", ip_address: str = "") -> str:
    session = AuthSession(user_id=user.id, user_agent=user_agent, ip_address=ip_address)
    db.add(session)
    db.commit()
    db.refresh(session)
    return create_session_token(user.id, user.role.value, session.id)


def login(
    db: Session,
    username: str,
    password: str,
    role: str,
    user_agent: str = "",
    ip_address: str = "",
) -> AuthResponse:
    try:
        expected_role = UserRole(role)
    except ValueError as exc:
        raise ValidationError("Invalid role") from exc

    login_key = (username or "").strip()
    user = db.query(User).filter(User.username == login_key).first()
    if not user or user.role != expected_role or not verify_password(password, user.password_hash):
        logger.info("login rejected username=%s role=%s", login_key, role)
        raise AuthError("Invalid credentials")

    if user.approval_status == ApprovalStatus.pending:
        raise AuthError("Account is pending admin approval")
    if user.approval_status == ApprovalStatus.rejected:
        raise AuthError("Account registration was rejected")
    if not user.is_active:
        raise AuthError("Account is disabled")

    token = _issue_token(db, user, user_agent=user_agent, ip_address=ip_address)
    logger.info("login ok username=%s role=%s", user.username, user.role.value)
    return AuthResponse(token=token, user=serialize_user(user))


def register_guest(db: Session, payload: GuestRegisterRequest) -> User:
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    existing = db.query(User).filter(User.username == payload.username).first()
    if existing:
        raise ConflictError("Username already exists")

    user = User(
        username=payload.username,
        full_name=payload.fullName.strip(),
        email=str(payload.email) if payload.email else None,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        role=UserRole.guest,
        approval_status=ApprovalStatus.pending,
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Username already exists") from exc
    db.refresh(user)
    return user


def ensure_admin(db: Session, username: str, password: str, full_name: str = "Administrator") -> User:
    user = db.query(User).filter(User.username == username).first()
    if user:
        return user
    user = User(
        username=username,
        full_name=full_name,
        password_hash=hash_password(password),
        role=UserRole.admin,
        approval_status=ApprovalStatus.approved,
        approved_by="system",
        approved_at=datetime.utcnow(),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def resolve_token(db: Session, token: str) -> tuple[User, AuthSession]:
    try:
        payload = decode_session_token(token)
    except ValueError as exc:
        raise AuthError(str(exc)) from exc

    session = db.query(AuthSession).filter(AuthSession.id == payload.get("sid")).first()
    if not session or session.revoked_at is not None:
        raise AuthError("Session has been revoked")

    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if not user or not user.can_authenticate:
        raise AuthError("User not found")
    return user, session


def verify_token(db: Session, token: str | None) -> dict:
    if not token:
        return {"valid": False, "user": None}
    try:
        user, _ = resolve_token(db, token)
    except AuthError:
        return {"valid": False, "user": None}
    return {"valid": True, "success": True, "user": serialize_user(user)}


def refresh(db: Session, user: User, session: AuthSession) -> str:
    session.revoked_at = datetime.utcnow()
    db.commit()
    return _issue_token(db, user, user_agent=session.user_agent, ip_address=session.ip_address)


def logout(db: Session, session: AuthSession) -> None:
    if session.revoked_at is None:
        session.revoked_at = datetime.utcnow()
        db.commit()


def revoke_user_sessions(db: Session, user_id: str) -> int:
    now = datetime.utcnow()
    updated = (
        db.query(AuthSession)
        .filter(AuthSession.user_id == user_id, AuthSession.revoked_at.is_(None))
        .update({AuthSession.revoked_at: now}, synchronize_session=False)
    )
    db.commit()
    return int(updated or 0)
