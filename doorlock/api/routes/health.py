from fastapi import APIRouter

from doorlock.core.config import get_settings
from doorlock.services.scan_service import scan_registry
from doorlock.socket.manager import socket_state

router = APIRouter()
settings = get_settings()


@router.get("/health")
def health():
    armed = scan_registry.peek()
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "connectedClients": socket_state.counts(),
        "readerArmed": armed is not None,
    }
