import logging
from typing import Any, Awaitable, Callable, Optional

import socketio

from config import SOCKET_CONNECT_TIMEOUT, SOCKET_TRANSPORTS, SOCKET_URL
from Models.notifications import NotificationType

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Any], Awaitable[None]]
DisconnectCallback = Callable[[str], Awaitable[None]]


class SocketIOTransport:
    """
    Conexão Socket.IO com o backend de pedidos.

    A reconexão automática do cliente fica desligada: quem decide quando
    e quantas vezes reconectar é o NotificationChannel.
    """

    def __init__(self, url: str = SOCKET_URL, connect_timeout: float = SOCKET_CONNECT_TIMEOUT,
                 transports=SOCKET_TRANSPORTS):
        self.url = url
        self.connect_timeout = connect_timeout
        self.transports = list(transports)
        self._sio: Optional[socketio.AsyncClient] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    async def connect(self, on_event: EventCallback, on_disconnect: DisconnectCallback) -> None:
        sio = socketio.AsyncClient(reconnection=False)

        def forward(event: str):
            async def handler(data=None):
                await on_event(event, data)
            return handler

        for event_type in NotificationType:
            sio.on(event_type.value, forward(event_type.value))

        async def disconnected(*args):
            # Desconexões pedidas por close() não são repassadas
            if self._closing:
                return
            reason = str(args[0]) if args else "server disconnect"
            await on_disconnect(reason)

        sio.on("disconnect", disconnected)

        await sio.connect(self.url, transports=self.transports, wait_timeout=self.connect_timeout)
        self._sio = sio
        logger.debug(f"Socket.IO conectado em {self.url} (sid {sio.sid})")

    async def emit(self, event: str, data: Any = None) -> None:
        if not self.connected:
            raise ConnectionError("Socket.IO não conectado")
        await self._sio.emit(event, data)

    async def close(self) -> None:
        self._closing = True
        if self._sio is not None:
            await self._sio.disconnect()
            self._sio = None
