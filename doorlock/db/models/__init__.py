from doorlock.db.models.access_code import AccessCode, CodeType
from doorlock.db.models.audit import AuditLog
from doorlock.db.models.auth_session import AuthSession
from doorlock.db.models.nfc_card import NfcCard
from doorlock.db.models.nfc_request import AccessType, NfcRequest, RequestStatus
from doorlock.db.models.unlock_log import UnlockLog, UnlockMethod
from doorlock.db.models.user import ApprovalStatus, User, UserRole

__all__ = [
    "AccessCode",
    "AccessType",
    "ApprovalStatus",
    "AuditLog",
    "AuthSession",
    "CodeType",
    "NfcCard",
    "NfcRequest",
    "RequestStatus",
    "UnlockLog",
    "UnlockMethod",
    "User",
    "UserRole",
]
