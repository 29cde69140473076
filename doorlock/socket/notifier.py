"""Server-to-client push events.

Structural events are "go re-fetch" signals with no (or summary) payload;
only device-originated notices and ``new-log`` carry data the client uses
directly.
"""
import logging
from typing import Any

from doorlock.core.config import get_settings
from doorlock.socket.channels import (  # noqa: F401
    ADMIN_ROOM,
    ALL_EVENTS,
    GUEST_VISIBLE_EVENTS,
    NEW_LOG,
    NEW_NFC_REQUEST,
    NEW_USER_REGISTRATION,
    NFC_DETECTED,
    NFC_REQUEST_RESPONDED,
    NFC_UPDATE,
    PASSWORD_UPDATE,
    PIN_ENTERED,
    USER_APPROVAL_UPDATE,
    USER_DELETED,
    guest_room,
)
from doorlock.socket.server import sio

settings = get_settings()
logger = logging.getLogger(__name__)


async def notify(event: str, payload: Any = None, guest_id: str | None = None) -> None:
    if event not in ALL_EVENTS:
        raise ValueError(f"Unknown realtime event: {event}")

    rooms = [ADMIN_ROOM]
    if guest_id and event in GUEST_VISIBLE_EVENTS:
        rooms.append(guest_room(guest_id))

    for room in rooms:
        try:
            await sio.emit(event, payload, room=room, namespace=settings.DASHBOARD_NAMESPACE)
        except Exception:
            # The mutation already committed; clients converge on their next re-fetch.
            logger.exception("failed to emit %s to %s", event, room)
