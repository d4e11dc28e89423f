import pytest

from fakes import order_payload
from Models.orders import DeliveryOption, PaymentType
from Services.errors import UnrecognizedResponseError
from Services.response_parsing import extract_gateway_order_id, parse_order, parse_order_page


def test_parse_order_prefers_metadata_over_data():
    body = {"metadata": order_payload("novo"), "data": order_payload("velho")}
    assert parse_order(body).id == "novo"


def test_parse_order_without_id_fails_closed():
    with pytest.raises(UnrecognizedResponseError):
        parse_order({"metadata": {"status": "pending"}})


def test_parse_order_invalid_field_fails_closed():
    with pytest.raises(UnrecognizedResponseError):
        parse_order({"metadata": order_payload("o1", totalPrice=-10)})


def test_parse_order_populated_references():
    payload = order_payload(
        "o1",
        userId={"_id": "u1", "username": "ana", "email": "ana@teste.com"},
        tableId={"_id": "t1", "tableNumber": 4, "status": "reserved"},
        cartId={"_id": "c1", "items": [{"dishId": {"_id": "d1", "name": "Pho", "price": 50000}, "quantity": 2}]},
        deliveryOptions="dine-in",
        typeOfPayment=None,
    )
    order = parse_order({"metadata": payload})

    assert order.customer_id == "u1"
    assert order.table_id == "t1"
    assert order.cart_lines[0].line_total == 100000
    assert order.delivery_option == DeliveryOption.DINE_IN
    assert order.type_of_payment == PaymentType.UNSET


def test_parse_order_keeps_unknown_fields():
    order = parse_order({"metadata": order_payload("o1", checkoutNote="sem cebola")})
    assert order.to_wire()["checkoutNote"] == "sem cebola"


def test_parse_order_page_empty_list():
    page = parse_order_page({"metadata": []})
    assert page.orders == []
    assert page.total_pages == 1


def test_parse_order_page_rejects_non_dict_metadata():
    with pytest.raises(UnrecognizedResponseError):
        parse_order_page({"metadata": "nada"})


def test_gateway_order_id_priority():
    params = {"id": "c", "orderId": "b", "orderInfo": "a"}
    assert extract_gateway_order_id(params) == "a"
    assert extract_gateway_order_id({"id": "c", "orderId": "b"}) == "b"
    assert extract_gateway_order_id({"id": "c", "orderInfo": " "}) == "c"
    assert extract_gateway_order_id({"resultCode": "0"}) is None
