import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError

from config import (
    ADMIN_JOIN_EVENT,
    ADMIN_LEAVE_EVENT,
    ALERT_DURATION_MS,
    SOCKET_RECONNECT_ATTEMPTS,
    SOCKET_RECONNECT_DELAY,
)
from Models.notifications import NotificationEnvelope, NotificationType
from Services.alerts import AlertPlayer

logger = logging.getLogger(__name__)

Handler = Callable[[NotificationEnvelope], Union[None, Awaitable[None]]]


class Transport(Protocol):
    @property
    def connected(self) -> bool: ...

    async def connect(self, on_event: Callable[[str, Any], Awaitable[None]],
                      on_disconnect: Callable[[str], Awaitable[None]]) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...

    async def close(self) -> None: ...


class NotificationChannel:
    """
    Canal de notificações em tempo real do painel admin.

    Uma conexão lógica por sessão, compartilhada por todos os consumidores
    (injete a mesma instância). A entrada na sala admin é contada por
    referência: a saída de um consumidor não derruba os outros.
    Erros de transporte são logados e nunca chegam aos listeners.
    """

    def __init__(self, transport_factory: Callable[[], Transport],
                 reconnect_attempts: int = SOCKET_RECONNECT_ATTEMPTS,
                 reconnect_delay: float = SOCKET_RECONNECT_DELAY,
                 alert: Optional[AlertPlayer] = None):
        self.transport_factory = transport_factory
        self.reconnect_attempts = max(reconnect_attempts, 1)
        self.reconnect_delay = reconnect_delay
        self.alert = alert or AlertPlayer()

        self._transport: Optional[Transport] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._closing = False
        self._room_refs = 0
        self._joined = False
        self.listeners: Dict[NotificationType, List[Handler]] = {t: [] for t in NotificationType}
        self.stats = {
            'connect_attempts': 0,
            'connections': 0,
            'disconnects': 0,
            'events_received': 0,
            'last_event_at': None,
        }

    # -------------------- conexão --------------------

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    @property
    def is_connecting(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    @property
    def room_members(self) -> int:
        return self._room_refs

    async def connect(self) -> bool:
        """
        Conecta ao backend. Chamadas concorrentes compartilham a mesma
        tentativa; se já conectado, não faz nada.
        """
        if self.is_connected:
            return True
        self._closing = False
        if not self.is_connecting:
            self._connect_task = asyncio.create_task(self._connect_with_retries())
        return await asyncio.shield(self._connect_task)

    async def reconnect(self) -> bool:
        """Reconexão explícita, depois que as tentativas automáticas se esgotaram"""
        return await self.connect()

    async def _connect_with_retries(self) -> bool:
        for attempt in range(1, self.reconnect_attempts + 1):
            self.stats['connect_attempts'] += 1
            await self._discard_transport()
            transport = self.transport_factory()
            try:
                await transport.connect(self._handle_event, self._handle_disconnect)
            except Exception as e:
                logger.warning(f"Falha ao conectar canal ({attempt}/{self.reconnect_attempts}): {e}")
                if attempt < self.reconnect_attempts and not self._closing:
                    await asyncio.sleep(self.reconnect_delay)
                    continue
                break

            self._transport = transport
            self.stats['connections'] += 1
            logger.info("Canal de notificações conectado")
            if self._room_refs > 0:
                await self._emit_join()
            return True

        if not self._closing:
            logger.error("Canal de notificações desconectado: tentativas de reconexão esgotadas")
        return False

    async def _discard_transport(self) -> None:
        transport, self._transport = self._transport, None
        self._joined = False
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug(f"Erro ao descartar transporte antigo: {e}")

    async def _handle_disconnect(self, reason: str) -> None:
        self._joined = False
        if self._closing:
            return
        self.stats['disconnects'] += 1
        logger.warning(f"Canal de notificações desconectado: {reason}")
        if not self.is_connecting:
            self._connect_task = asyncio.create_task(self._connect_with_retries())

    async def close(self) -> None:
        """Encerra a conexão e cancela reconexões pendentes"""
        self._closing = True
        if self.is_connecting:
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass
        self._connect_task = None
        await self._discard_transport()
        self.alert.stop()
        logger.info("Canal de notificações encerrado")

    # -------------------- sala admin --------------------

    async def join_room(self) -> None:
        self._room_refs += 1
        if self.is_connected and not self._joined:
            await self._emit_join()
        elif not self.is_connected:
            logger.info("Entrada na sala admin pendente até a conexão")

    async def leave_room(self) -> None:
        if self._room_refs == 0:
            return
        self._room_refs -= 1
        if self._room_refs > 0:
            return
        if self.is_connected and self._joined:
            try:
                await self._transport.emit(ADMIN_LEAVE_EVENT)
                logger.info("Saiu da sala admin")
            except Exception as e:
                logger.warning(f"Falha ao sair da sala admin: {e}")
        self._joined = False

    async def _emit_join(self) -> None:
        # Idempotente por conexão: nunca entra duas vezes na mesma sala
        if self._joined:
            return
        # Marcado antes do emit: um join_room concorrente não reenvia
        self._joined = True
        try:
            await self._transport.emit(ADMIN_JOIN_EVENT)
        except Exception as e:
            self._joined = False
            logger.warning(f"Falha ao entrar na sala admin: {e}")
            return
        logger.info("Entrou na sala admin")

    # -------------------- listeners --------------------

    def subscribe(self, event_type: NotificationType, handler: Handler) -> None:
        handlers = self.listeners[NotificationType(event_type)]
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: NotificationType, handler: Handler) -> None:
        handlers = self.listeners[NotificationType(event_type)]
        if handler in handlers:
            handlers.remove(handler)

    async def _handle_event(self, event: str, data: Any) -> None:
        try:
            event_type = NotificationType(event)
        except ValueError:
            logger.debug(f"Evento ignorado: {event}")
            return

        try:
            envelope = NotificationEnvelope.model_validate({"type": event_type, **self._payload(data)})
        except ValidationError as e:
            logger.warning(f"Notificação {event} com formato inválido: {e}")
            return

        self.stats['events_received'] += 1
        self.stats['last_event_at'] = datetime.now()
        await self.dispatch(envelope)

    @staticmethod
    def _payload(data: Any) -> Dict[str, Any]:
        if isinstance(data, dict) and "data" in data:
            return {k: v for k, v in data.items() if k != "type"}
        return {"data": data if isinstance(data, dict) else {}}

    async def dispatch(self, envelope: NotificationEnvelope) -> None:
        """Entrega a notificação aos listeners; falhas de um não afetam os demais"""
        for handler in list(self.listeners[envelope.type]):
            try:
                result = handler(envelope)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Erro em listener {envelope.type.value}: {e}", exc_info=True)

    # -------------------- alerta --------------------

    def play_alert(self, duration_ms: int = ALERT_DURATION_MS) -> None:
        self.alert.play(duration_ms)

    def stop_alert(self) -> None:
        self.alert.stop()

    def get_status(self) -> Dict[str, Any]:
        return {
            'connected': self.is_connected,
            'connecting': self.is_connecting,
            'room_members': self._room_refs,
            'joined': self._joined,
            'listeners': {t.value: len(h) for t, h in self.listeners.items()},
            'stats': self.stats.copy(),
        }
