import asyncio
import json
from itertools import count
from typing import Any, Dict, List, Optional

from Models.cart import Cart
from Models.orders import Order, OrderStatus
from Models.responses import OrderPage
from Services.errors import OrderServiceError


class StubResponse:
    def __init__(self, status_code: int = 200, body: Any = None, reason: str = "OK"):
        self.status_code = status_code
        self.reason = reason
        self.content = b"" if body is None else json.dumps(body).encode()
        self.text = self.content.decode()

    def json(self):
        return json.loads(self.content)


class StubSession:
    """Substitui requests.Session: devolve as respostas na ordem e grava as chamadas"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def order_payload(order_id: str = "o1", **fields) -> Dict[str, Any]:
    data = {
        "_id": order_id,
        "status": "pending",
        "payed": False,
        "deliveryOptions": "delivery",
        "typeOfPayment": "cash",
        "totalPrice": 100000,
        "createdAt": "2024-05-10T10:00:00Z",
    }
    data.update(fields)
    return data


def make_order(order_id: str = "o1", **fields) -> Order:
    return Order.model_validate(order_payload(order_id, **fields))


def make_cart(*lines, cart_id: str = "cart-1") -> Cart:
    """lines: (dish_id, name, price, quantity) ou (dish_id, name, price, final_price, quantity)"""
    items = []
    for line in lines:
        if len(line) == 4:
            dish_id, name, price, quantity = line
            dish = {"_id": dish_id, "name": name, "price": price}
        else:
            dish_id, name, price, final_price, quantity = line
            dish = {"_id": dish_id, "name": name, "price": price, "finalPrice": final_price}
        items.append({"dishId": dish, "quantity": quantity})
    return Cart.model_validate({"_id": cart_id, "items": items})


class FakeOrderClient:
    """Serviço de pedidos em memória com a mesma interface do OrderStoreClient"""

    def __init__(self, orders=()):
        self.orders: Dict[str, Order] = {o.id: o for o in orders}
        self.calls: List[tuple] = []
        self.list_fail_with: Optional[OrderServiceError] = None
        self.fail_with: Optional[OrderServiceError] = None
        self.create_fail_with: Optional[OrderServiceError] = None
        self.confirm_fail_with: Optional[OrderServiceError] = None
        self.pay_url: Optional[str] = "https://gateway.test/pay/123"
        self.gate = None
        self._ids = count(1)

    async def list_orders(self, query=None) -> OrderPage:
        self.calls.append(("list_orders",))
        if self.list_fail_with:
            raise self.list_fail_with
        orders = list(self.orders.values())
        return OrderPage(orders=orders, total=len(orders))

    async def create_order(self, order_data) -> Order:
        payload = order_data.model_dump(by_alias=True, mode="json", exclude_none=True)
        self.calls.append(("create_order", payload))
        if self.create_fail_with:
            raise self.create_fail_with
        order = Order.model_validate({"_id": f"order-{next(self._ids)}", **payload})
        self.orders[order.id] = order
        return order

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        self.calls.append(("update_status", order_id, status))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with:
            raise self.fail_with
        order = self.orders[order_id].model_copy(update={"status": status})
        self.orders[order_id] = order
        return order

    async def delete_order(self, order_id: str) -> None:
        self.calls.append(("delete_order", order_id))
        self.orders.pop(order_id, None)

    async def create_payment_link(self, order_id: str, email: str) -> Optional[str]:
        self.calls.append(("create_payment_link", order_id, email))
        return self.pay_url

    async def confirm_payment(self, order_id: str, email: str = "") -> Order:
        self.calls.append(("confirm_payment", order_id, email))
        if self.confirm_fail_with:
            raise self.confirm_fail_with
        return self.orders.get(order_id) or make_order(order_id, payed=True)

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeCartClient:
    def __init__(self, cart: Optional[Cart] = None):
        self.cart = cart
        self.cleared = 0
        self.fail_with: Optional[OrderServiceError] = None

    async def get_cart(self) -> Cart:
        return self.cart

    async def clear_cart(self) -> None:
        if self.fail_with:
            raise self.fail_with
        self.cleared += 1


class FakeTableClient:
    def __init__(self):
        self.changes = []
        self.fail_with: Optional[OrderServiceError] = None

    async def change_status(self, table_id, status) -> None:
        self.changes.append((table_id, status))
        if self.fail_with:
            raise self.fail_with


class FakeTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.connected = False
        self.closed = False
        self.emitted = []
        self.on_event = None
        self.on_disconnect = None

    async def connect(self, on_event, on_disconnect) -> None:
        if self.fail:
            raise ConnectionError("conexão recusada")
        self.on_event = on_event
        self.on_disconnect = on_disconnect
        self.connected = True

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))
        # Cede o loop como um envio real pelo socket
        await asyncio.sleep(0)

    async def close(self) -> None:
        self.connected = False
        self.closed = True

    async def push(self, event: str, data: Any) -> None:
        await self.on_event(event, data)

    async def drop(self, reason: str = "queda de rede") -> None:
        self.connected = False
        await self.on_disconnect(reason)


class TransportFactory:
    """As primeiras `failures` conexões falham"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(fail=len(self.created) < self.failures)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]
