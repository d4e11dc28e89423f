import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from Models.orders import DeliveryOption, Order, OrderStatus, PaymentType
from Models.responses import OrderPage
from Services.api_client import ApiClient
from Services.errors import OrderServiceError
from Services.response_parsing import extract_payment_url, parse_order, parse_order_page

logger = logging.getLogger(__name__)


class OrderQueryParams(BaseModel):
    """Parâmetros de listagem; o servidor trata como sugestão"""
    model_config = ConfigDict(populate_by_name=True)

    page: Optional[int] = None
    limit: Optional[int] = None
    status: Optional[OrderStatus] = None
    payed: Optional[bool] = None
    delivery_option: Optional[DeliveryOption] = Field(default=None, alias="deliveryOptions")
    type_of_payment: Optional[PaymentType] = Field(default=None, alias="typeOfPayment")

    def to_params(self) -> Dict[str, Any]:
        params = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        if self.payed is not None:
            params["payed"] = "true" if self.payed else "false"
        return params


class OrderCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart_id: str = Field(alias="cartId")
    total_price: float = Field(alias="totalPrice", ge=0)
    delivery_option: DeliveryOption = Field(alias="deliveryOptions")
    type_of_payment: PaymentType = Field(alias="typeOfPayment")
    delivery_address: Optional[str] = Field(default=None, alias="deleveryAddress")
    table_id: Optional[str] = Field(default=None, alias="tableId")
    booking_time: Optional[str] = Field(default=None, alias="bookingTime")
    discount_code: Optional[str] = Field(default=None, alias="discountCode")
    notes: Optional[str] = None


class OrderStoreClient:
    """
    Requisições do ciclo de vida do pedido contra o serviço externo.
    Sem estado; erros sobem como OrderServiceError.
    """

    def __init__(self, api: Optional[ApiClient] = None):
        self.api = api or ApiClient()

    async def list_orders(self, query: Optional[OrderQueryParams] = None) -> OrderPage:
        params = query.to_params() if query else None
        body = await self.api.get("/orders", params=params)
        return parse_order_page(body)

    async def get_order(self, order_id: str) -> Order:
        body = await self.api.get(f"/orders/{order_id}")
        return parse_order(body)

    async def create_order(self, order_data: OrderCreate) -> Order:
        payload = order_data.model_dump(by_alias=True, mode="json", exclude_none=True)
        body = await self.api.post("/orders", json=payload)
        order = parse_order(body)
        logger.info(f"Pedido {order.id} criado (total {order.total_price}, pagamento {order.type_of_payment.value})")
        return order

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Order:
        body = await self.api.patch(f"/orders/{order_id}", json=fields)
        return parse_order(body)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        body = await self.api.patch(f"/orders/{order_id}/status", json={"status": status.value})
        order = parse_order(body)
        logger.info(f"Status do pedido {order_id} atualizado para {status.value}")
        return order

    async def update_payment_method(self, order_id: str, payment_type: PaymentType) -> Order:
        body = await self.api.patch(f"/orders/{order_id}/payment-method",
                                    json={"typeOfPayment": payment_type.value})
        return parse_order(body)

    async def confirm_payment(self, order_id: str, email: str = "") -> Order:
        """
        Confirma o pagamento de um pedido.

        Idempotente: chamar de novo com o mesmo pedido é um no-op. Se o
        serviço responder que o pagamento já foi confirmado (409), o pedido
        atual é retornado como sucesso.
        """
        try:
            body = await self.api.post("/orders/confirm-payment", json={"orderId": order_id, "email": email or ""})
        except OrderServiceError as e:
            if e.status_code != 409:
                raise
            logger.info(f"Pagamento do pedido {order_id} já confirmado anteriormente")
            return await self.get_order(order_id)
        order = parse_order(body)
        logger.info(f"Pagamento do pedido {order_id} confirmado")
        return order

    async def create_payment_link(self, order_id: str, email: str) -> Optional[str]:
        """Cria o link de pagamento no gateway; None se a resposta não trouxer URL"""
        body = await self.api.post("/orders/create-payment", json={"email": email, "id": order_id})
        pay_url = extract_payment_url(body)
        if not pay_url:
            logger.warning(f"Resposta sem link de pagamento para o pedido {order_id}")
        return pay_url

    async def delete_order(self, order_id: str) -> None:
        await self.api.delete(f"/orders/{order_id}")
        logger.info(f"Pedido {order_id} removido")

    async def get_orders_by_customer(self, customer_id: str) -> OrderPage:
        body = await self.api.get("/orders/history", params={"userId": customer_id})
        return parse_order_page(body)
