"""Push channel vocabulary shared by the server notifier and the client."""

ADMIN_ROOM = "admins"

PASSWORD_UPDATE = "password-update"
NFC_UPDATE = "nfc-update"
NEW_LOG = "new-log"
NFC_DETECTED = "nfc-detected"
PIN_ENTERED = "pin-entered"
NEW_USER_REGISTRATION = "new-user-registration"
USER_APPROVAL_UPDATE = "user-approval-update"
USER_DELETED = "user-deleted"
NEW_NFC_REQUEST = "new-nfc-request"
NFC_REQUEST_RESPONDED = "nfc-request-responded"

ALL_EVENTS = (
    PASSWORD_UPDATE,
    NFC_UPDATE,
    NEW_LOG,
    NFC_DETECTED,
    PIN_ENTERED,
    NEW_USER_REGISTRATION,
    USER_APPROVAL_UPDATE,
    USER_DELETED,
    NEW_NFC_REQUEST,
    NFC_REQUEST_RESPONDED,
)

# Device-originated notices with no collection behind them.
EPHEMERAL_EVENTS = frozenset({NFC_DETECTED, PIN_ENTERED})

# Events the owning guest also receives.
GUEST_VISIBLE_EVENTS = frozenset({NEW_LOG, USER_APPROVAL_UPDATE, NFC_REQUEST_RESPONDED})


def guest_room(guest_id: str) -> str:
    return f"guest:{guest_id}"
