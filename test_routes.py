import pytest
from fastapi.testclient import TestClient

from fakes import FakeCartClient, FakeOrderClient, FakeTableClient, TransportFactory, make_cart, make_order
from main import AppServices, create_app
from Services.admin_console import AdminOrderConsole
from Services.alerts import AlertPlayer
from Services.checkout_service import CheckoutOrchestrator
from Services.errors import OrderServiceError
from Services.notification_channel import NotificationChannel
from Services.order_cache import OrderCache


@pytest.fixture
def backend():
    orders = FakeOrderClient([
        make_order("o1", status="pending"),
        make_order("o2", status="completed", createdAt="2024-05-09T10:00:00Z"),
    ])
    carts = FakeCartClient(make_cart(("d1", "Pho", 50000, 2)))
    channel = NotificationChannel(TransportFactory(), reconnect_attempts=1, reconnect_delay=0,
                                  alert=AlertPlayer(sink=lambda playing: None))
    console = AdminOrderConsole(orders, channel, OrderCache(staleness_window=0))
    services = AppServices(
        checkout=CheckoutOrchestrator(orders, carts, FakeTableClient()),
        console=console,
        channel=channel,
    )
    return services, orders, carts


@pytest.fixture
def client(backend):
    services, _, _ = backend
    with TestClient(create_app(services, open_console=False)) as test_client:
        yield test_client


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "API de pedidos está funcionando!"}


def test_list_orders_with_filters(client):
    response = client.get("/admin/orders", params={"status": "pending"})
    body = response.json()

    assert response.status_code == 200
    assert [o["_id"] for o in body["orders"]] == ["o1"]
    assert (body["total"], body["totalPages"], body["page"]) == (1, 1, 1)


def test_list_orders_paid_filter(client):
    body = client.get("/admin/orders", params={"payed": "true"}).json()
    assert [o["_id"] for o in body["orders"]] == ["o2"]


def test_list_orders_rejects_unknown_status(client):
    assert client.get("/admin/orders", params={"status": "lost"}).status_code == 422


def test_update_status(client, backend):
    _, orders, _ = backend
    client.get("/admin/orders")
    response = client.patch("/admin/orders/o1/status", json={"status": "confirmed"})

    assert response.status_code == 200
    assert response.json()["order"]["status"] == "confirmed"
    assert orders.orders["o1"].status.value == "confirmed"


def test_update_status_of_terminal_order(client):
    client.get("/admin/orders")
    response = client.patch("/admin/orders/o2/status", json={"status": "pending"})
    assert response.status_code == 400


def test_update_status_server_error_passthrough(client, backend):
    _, orders, _ = backend
    orders.fail_with = OrderServiceError(503, "Serviço indisponível")
    client.get("/admin/orders")
    response = client.patch("/admin/orders/o1/status", json={"status": "cancelled"})

    assert response.status_code == 503
    assert response.json()["detail"] == "Serviço indisponível"


def test_delete_order(client, backend):
    _, orders, _ = backend
    response = client.delete("/admin/orders/o1")
    assert response.status_code == 200
    assert "o1" not in orders.orders


def test_statistics(client):
    body = client.get("/admin/statistics").json()
    assert body["by_status"] == {"pending": 1, "confirmed": 0, "completed": 1, "cancelled": 0}
    assert body["paid_revenue"] == 100000
    assert len(body["daily_revenue"]) == 7


def test_checkout_cash(client, backend):
    _, orders, carts = backend
    payload = {
        "contact": {"full_name": "Tran B", "email": "b@teste.com", "phone": "0909", "address": "1 Nguyen Hue"},
        "payment_method": "cash",
    }
    response = client.post("/checkout", json=payload)
    body = response.json()

    assert response.status_code == 201
    assert body["success"] is True
    assert body["order"]["totalPrice"] == 100000
    assert carts.cleared == 1


def test_checkout_validation_error(client, backend):
    _, orders, _ = backend
    response = client.post("/checkout", json={"contact": {"full_name": "Tran B"}})

    assert response.status_code == 400
    assert response.json()["detail"]["fields"] == ["email", "phone", "address"]
    assert orders.called("create_order") == []


def test_payment_result(client, backend):
    _, orders, _ = backend
    response = client.get("/payment/result", params={"orderInfo": "o1", "resultCode": "0"})
    body = response.json()

    assert body["success"] is True
    assert body["confirmed"] is True
    assert body["order_id"] == "o1"
    assert orders.called("confirm_payment") == [("confirm_payment", "o1", "")]


def test_payment_result_failure(client):
    body = client.get("/payment/result", params={"resultCode": "49", "message": "Cancelado"}).json()
    assert body["success"] is False
    assert body["message"] == "Cancelado"


def test_list_orders_service_unavailable(client, backend):
    _, orders, _ = backend
    orders.list_fail_with = OrderServiceError(503, "Serviço indisponível")

    response = client.get("/admin/orders")
    assert response.status_code == 503
    assert response.json()["detail"] == "Serviço indisponível"
    assert client.get("/admin/statistics").status_code == 503


def test_list_orders_network_failure_is_bad_gateway(client, backend):
    _, orders, _ = backend
    orders.list_fail_with = OrderServiceError(0, "Sem conexão com o serviço")
    assert client.get("/admin/orders").status_code == 502
