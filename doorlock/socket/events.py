import logging

from doorlock.core.config import get_settings
from doorlock.core.security import decode_session_token
from doorlock.db.models import AuthSession, User, UserRole
from doorlock.db.session import SessionLocal
from doorlock.socket.manager import Principal, socket_state
from doorlock.socket.channels import ADMIN_ROOM, guest_room

settings = get_settings()
logger = logging.getLogger(__name__)


def resolve_principal(auth: dict | None) -> Principal | None:
    token = (auth or {}).get("token")
    if not token:
        return None
    try:
        payload = decode_session_token(token)
    except ValueError:
        return None

    db = SessionLocal()
    try:
        session = db.query(AuthSession).filter(AuthSession.id == payload.get("sid")).first()
        if not session or session.revoked_at is not None:
            return None
        user = db.query(User).filter(User.id == payload.get("sub")).first()
        if not user or not user.can_authenticate:
            return None
        return Principal(user_id=user.id, username=user.username, role=user.role.value)
    finally:
        db.close()


def register_socket_events(sio):
    @sio.event(namespace=settings.DASHBOARD_NAMESPACE)
    async def connect(sid, environ, auth):
        principal = resolve_principal(auth)
        if principal is None:
            logger.info("socket %s refused: missing or invalid token", sid)
            return False

        socket_state.bind(sid, principal)
        if principal.role == UserRole.admin.value:
            await sio.enter_room(sid, ADMIN_ROOM, namespace=settings.DASHBOARD_NAMESPACE)
        else:
            await sio.enter_room(sid, guest_room(principal.user_id), namespace=settings.DASHBOARD_NAMESPACE)
        logger.info("socket %s connected user=%s role=%s", sid, principal.username, principal.role)
        return True

    @sio.event(namespace=settings.DASHBOARD_NAMESPACE)
    async def disconnect(sid, *args):
        principal = socket_state.unbind_sid(sid)
        if principal:
            logger.info("socket %s disconnected user=%s", sid, principal.username)
