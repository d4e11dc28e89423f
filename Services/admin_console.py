import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import ADMIN_ORDERS_QUERY_KEY, ALERT_DURATION_MS
from Models.notifications import NotificationEnvelope, NotificationType
from Models.orders import Order, OrderStatus, can_transition
from Services.errors import OrderServiceError
from Services.notification_channel import NotificationChannel
from Services.order_cache import OptimisticMutator, OrderCache
from Services.order_client import OrderStoreClient
from Services.order_views import OrderFilters, Page, filter_orders, paginate, sort_recent
from Services.reports_services import OrderStatistics, order_statistics

logger = logging.getLogger(__name__)


class InvalidTransitionError(ValueError):
    pass


class AdminOrderConsole:
    """
    Painel de pedidos do admin.

    Mantém a coleção em cache, aplica as notificações do canal e faz as
    mudanças de status de forma otimista, sempre reconciliando com o
    servidor logo depois.
    """

    def __init__(self, client: OrderStoreClient, channel: NotificationChannel, cache: OrderCache,
                 key: str = ADMIN_ORDERS_QUERY_KEY, alert_duration_ms: int = ALERT_DURATION_MS):
        self.client = client
        self.channel = channel
        self.cache = cache
        self.key = key
        self.alert_duration_ms = alert_duration_ms
        self.mutator = OptimisticMutator(cache, key)
        self.cache.register(key, self._fetch_all)
        self.is_open = False
        self._handlers = {
            NotificationType.ORDER_NEW: self._on_new_order,
            NotificationType.PAYMENT_SUCCESS: self._on_payment_success,
            NotificationType.ORDER_STATUS_UPDATE: self._on_status_update,
        }

    async def _fetch_all(self) -> List[Order]:
        # Busca sem filtros; a filtragem é feita localmente
        page = await self.client.list_orders()
        return page.orders

    async def open(self) -> None:
        if self.is_open:
            return
        for event_type, handler in self._handlers.items():
            self.channel.subscribe(event_type, handler)
        self.is_open = True
        await self.channel.connect()
        await self.channel.join_room()
        try:
            await self.cache.refetch(self.key)
        except OrderServiceError as e:
            # Carga inicial em segundo plano; a próxima listagem tenta de novo
            logger.warning(f"Painel aberto sem pedidos carregados: {e}")
            return
        logger.info(f"Painel de pedidos aberto ({len(self.cache.get(self.key))} pedidos)")

    async def close(self) -> None:
        """Remove os listeners; requisições já enviadas terminam normalmente"""
        if not self.is_open:
            return
        for event_type, handler in self._handlers.items():
            self.channel.unsubscribe(event_type, handler)
        self.is_open = False
        await self.channel.leave_room()
        logger.info("Painel de pedidos fechado")

    # -------------------- notificações --------------------

    def _apply_notification(self, envelope: NotificationEnvelope) -> None:
        order_id = envelope.order_id
        if order_id and self.mutator.is_in_flight(order_id):
            # Mutação local em voo: a reconciliação resolve a corrida
            logger.debug(f"Notificação do pedido {order_id} adiada: mutação em andamento")
        elif envelope.data:
            self.cache.apply_projection(self.key, envelope.data)
        self.mutator.reconcile()

    async def _on_new_order(self, envelope: NotificationEnvelope) -> None:
        logger.info(f"Novo pedido recebido: {envelope.order_id}")
        self._apply_notification(envelope)
        self.channel.play_alert(self.alert_duration_ms)

    async def _on_payment_success(self, envelope: NotificationEnvelope) -> None:
        logger.info(f"Pagamento confirmado: {envelope.order_id}")
        self._apply_notification(envelope)
        self.channel.play_alert(self.alert_duration_ms)

    async def _on_status_update(self, envelope: NotificationEnvelope) -> None:
        logger.info(f"Status atualizado: {envelope.order_id} -> {envelope.data.get('status')}")
        self._apply_notification(envelope)

    # -------------------- ações do admin --------------------

    async def change_status(self, order_id: str, new_status: OrderStatus) -> Optional[Order]:
        """
        Muda o status de forma otimista.

        Returns:
            O pedido devolvido pelo servidor, ou None se já havia uma
            mudança em andamento para o mesmo pedido

        Raises:
            InvalidTransitionError: Pedido em estado terminal
            OrderServiceError: Falha do servidor (cache já restaurado)
        """
        if self.mutator.is_in_flight(order_id):
            logger.info(f"Mudança de status do pedido {order_id} ignorada: outra já está em andamento")
            return None

        current = self.cache.get_order(self.key, order_id)
        if current is not None and current.status == new_status:
            return current
        if current is not None and not can_transition(current.status, new_status):
            raise InvalidTransitionError(f"Transição inválida: {current.status.value} -> {new_status.value}")

        return await self.mutator.mutate(
            order_id,
            {"status": new_status},
            lambda: self.client.update_status(order_id, new_status),
        )

    async def confirm(self, order_id: str) -> Optional[Order]:
        return await self.change_status(order_id, OrderStatus.CONFIRMED)

    async def complete(self, order_id: str) -> Optional[Order]:
        return await self.change_status(order_id, OrderStatus.COMPLETED)

    async def reject(self, order_id: str) -> Optional[Order]:
        return await self.change_status(order_id, OrderStatus.CANCELLED)

    async def delete_order(self, order_id: str) -> None:
        """Remoção explícita e irreversível"""
        await self.client.delete_order(order_id)
        self.cache.remove_order(self.key, order_id)
        self.mutator.reconcile()

    async def refresh(self) -> None:
        await self.cache.invalidate(self.key)

    # -------------------- views --------------------

    def orders(self, filters: Optional[OrderFilters] = None) -> tuple:
        return filter_orders(sort_recent(self.cache.get(self.key)), filters)

    def page(self, filters: Optional[OrderFilters] = None, page: int = 1, limit: int = 10) -> Page:
        return paginate(self.orders(filters), page, limit)

    def statistics(self, now: Optional[datetime] = None) -> OrderStatistics:
        return order_statistics(self.cache.get(self.key), now or datetime.now().astimezone())

    def get_status(self) -> Dict[str, Any]:
        return {
            'open': self.is_open,
            'orders': len(self.cache.get(self.key)),
            'stale': self.cache.is_stale(self.key),
            'channel': self.channel.get_status(),
        }
