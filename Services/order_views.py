"""
Views derivadas da coleção de pedidos: filtros e paginação.

Funções puras: mesma coleção e mesmos filtros sempre dão o mesmo resultado.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from math import ceil
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from Models.orders import DeliveryOption, Order, OrderStatus, PaymentType, is_paid

Predicate = Callable[[Order], bool]

# Valores legados: filtrar por "cod" também traz pedidos "cash"
PAYMENT_TYPE_ALIASES: Dict[PaymentType, FrozenSet[PaymentType]] = {
    PaymentType.COD: frozenset({PaymentType.COD, PaymentType.CASH}),
}


class OrderFilters(BaseModel):
    """Filtros do painel de pedidos; campo None significa filtro inativo"""
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[OrderStatus] = Field(default=None, description="Status do pedido")
    payed: Optional[bool] = Field(default=None, description="Pago (derivado) ou não")
    delivery_option: Optional[DeliveryOption] = Field(default=None, alias="deliveryOptions",
                                                      description="Forma de entrega")
    type_of_payment: Optional[PaymentType] = Field(default=None, alias="typeOfPayment",
                                                   description="Forma de pagamento")

    @property
    def is_empty(self) -> bool:
        return not active_predicates(self)


def status_equals(status: OrderStatus) -> Predicate:
    return lambda order: order.status == status


def paid_equals(paid: bool) -> Predicate:
    return lambda order: is_paid(order) == paid


def delivery_option_equals(option: DeliveryOption) -> Predicate:
    return lambda order: order.delivery_option == option


def payment_type_equals(payment_type: PaymentType) -> Predicate:
    accepted = PAYMENT_TYPE_ALIASES.get(payment_type, frozenset({payment_type}))
    return lambda order: order.type_of_payment in accepted


def active_predicates(filters: OrderFilters) -> List[Predicate]:
    predicates = []
    if filters.status is not None:
        predicates.append(status_equals(filters.status))
    if filters.payed is not None:
        predicates.append(paid_equals(filters.payed))
    if filters.delivery_option is not None:
        predicates.append(delivery_option_equals(filters.delivery_option))
    if filters.type_of_payment is not None:
        predicates.append(payment_type_equals(filters.type_of_payment))
    return predicates


def filter_orders(orders: Iterable[Order], filters: Optional[OrderFilters] = None) -> Tuple[Order, ...]:
    """
    AND de todos os filtros ativos. Sem filtro ativo a coleção volta
    inteira: ausência de filtro é "mostrar tudo".
    """
    orders = tuple(orders)
    predicates = active_predicates(filters) if filters else []
    if not predicates:
        return orders
    return tuple(o for o in orders if all(p(o) for p in predicates))


@dataclass(frozen=True)
class Page:
    items: Tuple[Order, ...]
    page: int
    limit: int
    total: int
    total_pages: int


def paginate(orders: Iterable[Order], page: int = 1, limit: int = 10) -> Page:
    orders = tuple(orders)
    limit = max(limit, 1)
    total_pages = max(ceil(len(orders) / limit), 1)
    page = min(max(page, 1), total_pages)
    start = (page - 1) * limit
    return Page(
        items=orders[start:start + limit],
        page=page,
        limit=limit,
        total=len(orders),
        total_pages=total_pages,
    )


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(order: Order):
    created = order.created_at
    if created is None:
        return (_EPOCH, order.id)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (created, order.id)


def sort_recent(orders: Iterable[Order]) -> Tuple[Order, ...]:
    """Mais recentes primeiro (createdAt desc, id como desempate)"""
    return tuple(sorted(orders, key=_sort_key, reverse=True))


def orders_for_customer(orders: Iterable[Order], customer_id: str) -> Tuple[Order, ...]:
    """Histórico de pedidos de um cliente, mais recentes primeiro"""
    return sort_recent(o for o in orders if o.customer_id == customer_id)
