import logging

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from doorlock.client.sync import DashboardSync
from doorlock.core.exceptions import AuthError, TransientNetworkError
from doorlock.socket import channels

logger = logging.getLogger(__name__)


class RealtimeSubscriber:
    """Feeds push events from the gateway into a ``DashboardSync``.

    Events that arrive while disconnected are lost, so every (re)connect
    triggers a full refresh.
    """

    def __init__(self, sync: DashboardSync, url: str, socketio_path: str = "socket.io", client=None):
        self.sync = sync
        self.url = url
        self.socketio_path = socketio_path
        self.client = client or socketio.AsyncClient(reconnection=True, logger=False)
        self._register_handlers()

    def _register_handlers(self) -> None:
        for event in channels.ALL_EVENTS:
            self.client.on(event, self._handler_for(event))
        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)

    def _handler_for(self, event: str):
        async def handler(payload=None):
            await self.sync.handle_event(event, payload)

        return handler

    async def _on_connect(self):
        logger.info("push channel connected, refreshing dashboard")
        await self.sync.refresh_all()

    async def _on_disconnect(self, *args):
        logger.info("push channel disconnected")

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    async def connect(self) -> None:
        token = self.sync.api.session.token
        if not token:
            raise AuthError("Login required before subscribing")
        try:
            await self.client.connect(
                self.url,
                auth={"token": token},
                socketio_path=self.socketio_path,
                transports=["websocket", "polling"],
            )
        except SocketConnectionError as exc:
            raise TransientNetworkError(f"Push channel unavailable: {exc}") from exc

    async def disconnect(self) -> None:
        if self.client.connected:
            await self.client.disconnect()
