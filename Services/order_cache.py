import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from config import CACHE_STALENESS_WINDOW
from Models.orders import Order
from Services.errors import OrderServiceError

logger = logging.getLogger(__name__)

OrderSnapshot = Tuple[Order, ...]
Fetcher = Callable[[], Awaitable[List[Order]]]
ViewSubscriber = Callable[[OrderSnapshot], Any]
PatchFn = Callable[[Order, Dict[str, Any]], Order]

# Campos sem os quais um pedido desconhecido não entra no cache
NEW_ORDER_FIELDS = ("totalPrice", "deliveryOptions", "status", "createdAt")


def apply_field_patch(order: Order, patch: Dict[str, Any]) -> Order:
    """Gera um novo pedido com os campos alterados; o original fica intacto"""
    return order.model_copy(update=patch)


def merge_projection(order: Order, projection: Dict[str, Any]) -> Order:
    """Mescla uma projeção parcial (formato do backend) sobre o pedido em cache"""
    merged = order.model_dump(by_alias=True, mode="json")
    merged.update(projection)
    return Order.model_validate(merged)


@dataclass
class CacheEntry:
    fetcher: Fetcher
    orders: OrderSnapshot = ()
    stale: bool = True
    fetched_at: Optional[datetime] = None
    version: int = 0
    subscribers: List[ViewSubscriber] = field(default_factory=list)


class OrderCache:
    """
    Cache em memória da coleção de pedidos, indexado por chave de consulta.

    Cada chave guarda uma tupla imutável de pedidos: toda alteração troca
    o pedido inteiro (nunca há pedido meio atualizado) e avisa os
    assinantes da view.
    """

    def __init__(self, staleness_window: float = CACHE_STALENESS_WINDOW):
        self.staleness_window = staleness_window
        self._entries: Dict[str, CacheEntry] = {}
        self._refetch_tasks: Dict[str, asyncio.Task] = {}
        self._refetch_again: Set[str] = set()
        self._subscriber_tasks: Set[asyncio.Task] = set()

    def register(self, key: str, fetcher: Fetcher) -> None:
        if key in self._entries:
            self._entries[key].fetcher = fetcher
        else:
            self._entries[key] = CacheEntry(fetcher=fetcher)

    def _entry(self, key: str) -> CacheEntry:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError(f"Consulta não registrada no cache: {key}") from None

    def get(self, key: str) -> OrderSnapshot:
        return self._entry(key).orders

    def get_order(self, key: str, order_id: str) -> Optional[Order]:
        for order in self._entry(key).orders:
            if order.id == order_id:
                return order
        return None

    def is_stale(self, key: str) -> bool:
        return self._entry(key).stale

    def snapshot(self, key: str) -> OrderSnapshot:
        return self._entry(key).orders

    def restore(self, key: str, snapshot: OrderSnapshot) -> None:
        self._replace(key, snapshot)
        logger.info(f"Cache '{key}' restaurado para o snapshot anterior")

    def subscribe(self, key: str, subscriber: ViewSubscriber) -> None:
        subscribers = self._entry(key).subscribers
        if subscriber not in subscribers:
            subscribers.append(subscriber)

    def unsubscribe(self, key: str, subscriber: ViewSubscriber) -> None:
        subscribers = self._entry(key).subscribers
        if subscriber in subscribers:
            subscribers.remove(subscriber)

    def _replace(self, key: str, orders: OrderSnapshot, stale: Optional[bool] = None) -> None:
        entry = self._entry(key)
        entry.orders = tuple(orders)
        entry.version += 1
        if stale is not None:
            entry.stale = stale
        self._notify(key, entry)

    def _notify(self, key: str, entry: CacheEntry) -> None:
        for subscriber in list(entry.subscribers):
            try:
                result = subscriber(entry.orders)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._subscriber_tasks.add(task)
                    task.add_done_callback(lambda t, k=key: self._subscriber_done(k, t))
            except Exception as e:
                logger.error(f"Erro em assinante da view '{key}': {e}", exc_info=True)

    def _subscriber_done(self, key: str, task: asyncio.Task) -> None:
        self._subscriber_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Erro em assinante da view '{key}': {task.exception()}")

    async def wait_subscribers(self) -> None:
        """Aguarda os assinantes assíncronos ainda em execução"""
        while self._subscriber_tasks:
            await asyncio.gather(*list(self._subscriber_tasks), return_exceptions=True)

    # -------------------- mutações locais --------------------

    def set(self, key: str, orders: List[Order]) -> None:
        entry = self._entry(key)
        entry.fetched_at = datetime.now()
        self._replace(key, tuple(orders), stale=False)

    def patch_order(self, key: str, order_id: str, patch: Dict[str, Any],
                    patch_fn: PatchFn = apply_field_patch) -> bool:
        """Troca o pedido inteiro por sua versão alterada; False se não estiver no cache"""
        orders = self._entry(key).orders
        for index, order in enumerate(orders):
            if order.id == order_id:
                patched = patch_fn(order, patch)
                self._replace(key, orders[:index] + (patched,) + orders[index + 1:])
                return True
        return False

    def upsert_order(self, key: str, order: Order) -> None:
        orders = self._entry(key).orders
        for index, current in enumerate(orders):
            if current.id == order.id:
                self._replace(key, orders[:index] + (order,) + orders[index + 1:])
                return
        # Pedido novo vai para o topo, como na listagem do admin
        self._replace(key, (order,) + orders)

    def apply_projection(self, key: str, projection: Dict[str, Any]) -> bool:
        """
        Aplica uma projeção vinda de notificação. Pedido desconhecido só é
        inserido se a projeção trouxer os campos de NEW_ORDER_FIELDS; do
        contrário fica para a reconciliação. Projeção inválida é descartada.
        """
        order_id = projection.get("_id")
        if not order_id:
            return False
        current = self.get_order(key, order_id)
        if current is None:
            missing = [name for name in NEW_ORDER_FIELDS if projection.get(name) is None]
            if missing:
                logger.debug(f"Projeção parcial do pedido desconhecido {order_id} ignorada (faltam {missing})")
                return False
        try:
            order = merge_projection(current, projection) if current else Order.model_validate(projection)
        except ValidationError as e:
            logger.warning(f"Projeção do pedido {order_id} descartada: {e}")
            return False
        self.upsert_order(key, order)
        return True

    def remove_order(self, key: str, order_id: str) -> bool:
        orders = self._entry(key).orders
        remaining = tuple(o for o in orders if o.id != order_id)
        if len(remaining) == len(orders):
            return False
        self._replace(key, remaining)
        return True

    # -------------------- reconciliação --------------------

    async def refetch(self, key: str) -> OrderSnapshot:
        """
        Busca a coleção inteira de novo. Buscas concorrentes da mesma chave
        são agrupadas; uma invalidação durante a busca dispara mais uma.

        Raises:
            OrderServiceError: Falha da listagem (o snapshot anterior é mantido
                e a consulta continua desatualizada)
        """
        task = self._refetch_tasks.get(key)
        if task is not None and not task.done():
            self._refetch_again.add(key)
            return await asyncio.shield(task)
        task = asyncio.create_task(self._refetch_loop(key))
        self._refetch_tasks[key] = task
        return await asyncio.shield(task)

    async def _refetch_loop(self, key: str) -> OrderSnapshot:
        entry = self._entry(key)
        while True:
            self._refetch_again.discard(key)
            try:
                orders = await entry.fetcher()
            except OrderServiceError as e:
                logger.error(f"Falha ao recarregar '{key}': {e}")
                raise
            if key not in self._refetch_again:
                self.set(key, orders)
                logger.debug(f"Cache '{key}' recarregado: {len(orders)} pedidos")
                return entry.orders

    async def invalidate(self, key: Optional[str] = None, refetch: bool = True) -> None:
        """Marca a consulta (ou todas) como desatualizada e recarrega"""
        keys = [key] if key is not None else list(self._entries)
        for k in keys:
            self._entry(k).stale = True
        if refetch:
            await asyncio.gather(*(self.refetch(k) for k in keys))

    async def ensure_fresh(self, key: str) -> OrderSnapshot:
        if self.is_stale(key):
            return await self.refetch(key)
        return self.get(key)


class OptimisticMutator:
    """
    Mutação otimista em três fases: apply(patch) -> commit(request) ->
    reconcile(refetch).

    Uma segunda mutação para o mesmo pedido enquanto a primeira está em
    voo é ignorada (retorna None, nenhuma requisição sai).
    """

    def __init__(self, cache: OrderCache, key: str, patch_fn: PatchFn = apply_field_patch):
        self.cache = cache
        self.key = key
        self.patch_fn = patch_fn
        self._in_flight: Set[str] = set()
        self._reconciliations: Set[asyncio.Task] = set()

    def is_in_flight(self, order_id: str) -> bool:
        return order_id in self._in_flight

    def apply(self, order_id: str, patch: Dict[str, Any]) -> OrderSnapshot:
        """Fase 1: aplica o patch no cache e devolve o snapshot anterior"""
        snapshot = self.cache.snapshot(self.key)
        self.cache.patch_order(self.key, order_id, patch, self.patch_fn)
        return snapshot

    async def commit(self, request: Callable[[], Awaitable[Order]], snapshot: OrderSnapshot) -> Order:
        """Fase 2: envia a requisição; em caso de falha restaura o snapshot e repassa o erro"""
        try:
            order = await request()
        except Exception:
            self.cache.restore(self.key, snapshot)
            raise
        self.cache.upsert_order(self.key, order)
        return order

    def reconcile(self) -> asyncio.Task:
        """Fase 3: após a janela de staleness, invalida e recarrega tudo"""
        task = asyncio.create_task(self._reconcile_later())
        self._reconciliations.add(task)
        task.add_done_callback(self._reconciliations.discard)
        return task

    async def _reconcile_later(self) -> None:
        await asyncio.sleep(self.cache.staleness_window)
        try:
            await self.cache.invalidate(self.key)
        except Exception as e:
            logger.error(f"Falha na reconciliação de '{self.key}': {e}")

    async def mutate(self, order_id: str, patch: Dict[str, Any],
                     request: Callable[[], Awaitable[Order]]) -> Optional[Order]:
        if order_id in self._in_flight:
            logger.info(f"Mutação do pedido {order_id} ignorada: outra já está em andamento")
            return None

        self._in_flight.add(order_id)
        try:
            snapshot = self.apply(order_id, patch)
            return await self.commit(request, snapshot)
        finally:
            self._in_flight.discard(order_id)
            self.reconcile()

    async def wait_reconciled(self) -> None:
        """Aguarda as reconciliações agendadas (útil no shutdown e em testes)"""
        while self._reconciliations:
            await asyncio.gather(*list(self._reconciliations), return_exceptions=True)
