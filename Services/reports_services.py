from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pytz

from config import BOOKING_HOURS, TIMEZONE, TOP_DISHES_LIMIT
from Models.orders import DeliveryOption, Order, OrderStatus, PaymentType, is_paid
from Services.order_views import sort_recent

WEEK = timedelta(days=7)
OTHER_DISHES_LABEL = "Outros"


@dataclass
class DailyRevenue:
    date: str
    label: str
    revenue: float = 0.0


@dataclass
class DishStat:
    dish_id: Optional[str]
    name: str
    image: str = ""
    total_quantity: int = 0
    total_revenue: float = 0.0
    percentage: float = 0.0
    color_index: Optional[int] = None


@dataclass
class HourCount:
    hour: int
    count: int = 0


@dataclass
class WeeklySummary:
    total_revenue: float
    total_orders: int
    unique_customers: int
    revenue_growth: float
    orders_growth: float
    customers_growth: float


@dataclass
class OrderStatistics:
    by_status: Dict[str, int]
    by_delivery_option: Dict[str, int]
    by_payment_type: Dict[str, int]
    paid_revenue: float
    daily_revenue: List[DailyRevenue]
    top_dishes: List[DishStat]
    booking_by_hour: List[HourCount]
    weekly_summary: WeeklySummary
    recent_orders: List[dict] = field(default_factory=list)


def _tz(tz=None):
    if tz is None:
        return pytz.timezone(TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value


def local_date(value: datetime, tz=None) -> date:
    """Data do calendário local (não UTC) de um timestamp"""
    return _aware(value).astimezone(_tz(tz)).date()


def orders_between(orders: Iterable[Order], start: datetime, end: datetime) -> Tuple[Order, ...]:
    """Pedidos com createdAt em [start, end)"""
    start, end = _aware(start), _aware(end)
    return tuple(
        o for o in orders
        if o.created_at is not None and start <= _aware(o.created_at) < end
    )


def week_orders(orders: Iterable[Order], now: datetime) -> Tuple[Order, ...]:
    now = _aware(now)
    return tuple(
        o for o in orders
        if o.created_at is not None and _aware(o.created_at) >= now - WEEK
    )


def count_by_status(orders: Iterable[Order]) -> Dict[str, int]:
    counts = {s.value: 0 for s in OrderStatus}
    for order in orders:
        counts[order.status.value] += 1
    return counts


def count_by_delivery_option(orders: Iterable[Order]) -> Dict[str, int]:
    counts = {d.value: 0 for d in DeliveryOption}
    for order in orders:
        counts[order.delivery_option.value] += 1
    return counts


def count_by_payment_type(orders: Iterable[Order]) -> Dict[str, int]:
    counts = {p.value: 0 for p in PaymentType}
    for order in orders:
        counts[order.type_of_payment.value] += 1
    return counts


def paid_revenue(orders: Iterable[Order]) -> float:
    return sum(o.total_price for o in orders if is_paid(o))


def daily_revenue(orders: Iterable[Order], now: datetime, tz=None, days: int = 7) -> List[DailyRevenue]:
    """
    Receita paga dos últimos `days` dias, agrupada pela data local do
    pedido. O último item é o dia de hoje.
    """
    today = local_date(now, tz)
    buckets: List[DailyRevenue] = []
    index: Dict[date, DailyRevenue] = {}
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        bucket = DailyRevenue(date=day.isoformat(), label=day.strftime("%d/%m"))
        buckets.append(bucket)
        index[day] = bucket

    for order in orders:
        if order.created_at is None or not is_paid(order):
            continue
        bucket = index.get(local_date(order.created_at, tz))
        if bucket is not None:
            bucket.revenue += order.total_price
    return buckets


def top_dishes(orders: Iterable[Order], now: datetime, limit: int = TOP_DISHES_LIMIT) -> List[DishStat]:
    """
    Pratos mais pedidos (quantidade) nos pedidos pagos da última semana.

    Os `limit` primeiros vêm individualmente e o resto é somado em
    "Outros", para que os percentuais fechem 100%.
    """
    stats: Dict[str, DishStat] = {}
    for order in week_orders(orders, now):
        if not is_paid(order):
            continue
        for line in order.cart_lines:
            if isinstance(line.dish, str):
                continue
            stat = stats.get(line.dish_id)
            if stat is None:
                stat = stats[line.dish_id] = DishStat(
                    dish_id=line.dish_id, name=line.dish.name, image=line.dish.image,
                )
            stat.total_quantity += line.quantity
            stat.total_revenue += line.line_total

    ranked = sorted(stats.values(), key=lambda s: (-s.total_quantity, s.name, s.dish_id))
    total = sum(s.total_quantity for s in ranked)
    if total == 0:
        return []

    result = ranked[:limit]
    for position, stat in enumerate(result):
        stat.percentage = stat.total_quantity / total * 100
        stat.color_index = position

    others = sum(s.total_quantity for s in ranked[limit:])
    if others > 0:
        result.append(DishStat(
            dish_id=None,
            name=OTHER_DISHES_LABEL,
            total_quantity=others,
            total_revenue=0.0,
            percentage=others / total * 100,
        ))
    return result


def booking_by_hour(orders: Iterable[Order], now: datetime, tz=None,
                    hours: Iterable[int] = BOOKING_HOURS) -> List[HourCount]:
    """Reservas (dine-in) da última semana por hora local"""
    counts = {h: HourCount(hour=h) for h in hours}
    zone = _tz(tz)
    for order in week_orders(orders, now):
        if order.delivery_option != DeliveryOption.DINE_IN:
            continue
        hour = _aware(order.created_at).astimezone(zone).hour
        if hour in counts:
            counts[hour].count += 1
    return list(counts.values())


def _growth(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0


def weekly_summary(orders: Iterable[Order], now: datetime) -> WeeklySummary:
    """Semana atual comparada com a anterior"""
    orders = tuple(orders)
    now = _aware(now)
    current = orders_between(orders, now - WEEK, now + timedelta(microseconds=1))
    previous = orders_between(orders, now - 2 * WEEK, now - WEEK)

    revenue, prev_revenue = paid_revenue(current), paid_revenue(previous)
    customers = len({o.customer_id for o in current})
    prev_customers = len({o.customer_id for o in previous})

    return WeeklySummary(
        total_revenue=revenue,
        total_orders=len(current),
        unique_customers=customers,
        revenue_growth=_growth(revenue, prev_revenue),
        orders_growth=_growth(len(current), len(previous)),
        customers_growth=_growth(customers, prev_customers),
    )


def recent_orders(orders: Iterable[Order], limit: int = 5) -> List[Order]:
    return list(sort_recent(orders)[:limit])


def order_statistics(orders: Iterable[Order], now: datetime, tz=None) -> OrderStatistics:
    """
    Relatório completo do painel de estatísticas.

    Args:
        orders: Snapshot atual dos pedidos
        now: Instante de referência (injetado para resultados determinísticos)
        tz: Fuso do calendário local; padrão config.TIMEZONE

    Returns:
        OrderStatistics com contagens, receita, histogramas e resumo semanal
    """
    orders = tuple(orders)
    return OrderStatistics(
        by_status=count_by_status(orders),
        by_delivery_option=count_by_delivery_option(orders),
        by_payment_type=count_by_payment_type(orders),
        paid_revenue=paid_revenue(orders),
        daily_revenue=daily_revenue(orders, now, tz),
        top_dishes=top_dishes(orders, now),
        booking_by_hour=booking_by_hour(orders, now, tz),
        weekly_summary=weekly_summary(orders, now),
        recent_orders=[o.to_wire() for o in recent_orders(orders)],
    )
