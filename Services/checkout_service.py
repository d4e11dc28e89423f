import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional, Set

import pytz

from config import TIMEZONE
from Models.cart import Cart, CheckoutRequest
from Models.orders import DeliveryOption, GATEWAY_PAYMENT_TYPES, Order, PaymentType
from Models.tables import TableStatus
from Services.cart_client import CartClient
from Services.errors import CheckoutValidationError, OrderServiceError
from Services.order_client import OrderCreate, OrderStoreClient
from Services.response_parsing import extract_gateway_order_id
from Services.table_client import TableClient

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS_MESSAGE = "Pagamento realizado com sucesso! Obrigado pelo seu pedido."
PAYMENT_FAILED_MESSAGE = "Pagamento não realizado. Tente novamente."


@dataclass
class CheckoutResult:
    success: bool
    message: str
    order: Optional[Order] = None
    redirect_url: Optional[str] = None
    cart_cleared: bool = False


@dataclass
class PaymentReturnResult:
    success: bool
    message: str
    order_id: Optional[str] = None
    confirmed: bool = False


def compute_total(cart: Cart, discount_percentage: float = 0) -> float:
    """Subtotal do carrinho menos o desconto percentual"""
    subtotal = cart.subtotal
    return subtotal - subtotal * discount_percentage / 100


def validate_checkout(cart: Optional[Cart], request: CheckoutRequest) -> None:
    """
    Valida carrinho e dados de contato antes de qualquer chamada de rede.

    Raises:
        CheckoutValidationError: Se faltar carrinho, item ou campo obrigatório
    """
    if cart is None or not cart.id:
        raise CheckoutValidationError("Carrinho não encontrado!", ["cart"])
    if not any(item.quantity > 0 for item in cart.items):
        raise CheckoutValidationError("Carrinho vazio. Adicione pratos do cardápio.", ["items"])

    contact = request.contact
    missing = [name for name in ("full_name", "email", "phone") if not getattr(contact, name).strip()]
    if request.delivery_option == DeliveryOption.DELIVERY and not contact.address.strip():
        missing.append("address")
    if request.delivery_option == DeliveryOption.DINE_IN and not request.table_id:
        missing.append("table_id")
    if missing:
        raise CheckoutValidationError("Preencha todas as informações obrigatórias!", missing)


class CheckoutOrchestrator:
    """
    Sequência de finalização do pedido: criação, reserva de mesa,
    pagamento e limpeza do carrinho. Cada passo tolera falha parcial sem
    desfazer o pedido já criado.
    """

    def __init__(self, orders: OrderStoreClient, carts: CartClient, tables: TableClient, tz: str = TIMEZONE):
        self.orders = orders
        self.carts = carts
        self.tables = tables
        self.tz = pytz.timezone(tz)
        self._session_emails: Dict[str, str] = {}
        self._confirmed: Set[str] = set()

    async def place_order(self, cart: Optional[Cart], request: CheckoutRequest) -> CheckoutResult:
        validate_checkout(cart, request)

        contact = request.contact
        payment_type = PaymentType.CASH if request.payment_method == PaymentType.COD else request.payment_method
        percentage = request.discount.percentage if request.discount else 0
        is_dine_in = request.delivery_option == DeliveryOption.DINE_IN

        order_data = OrderCreate(
            cart_id=cart.id,
            total_price=compute_total(cart, percentage),
            delivery_option=request.delivery_option,
            type_of_payment=payment_type,
            delivery_address=contact.address.strip() or None,
            table_id=request.table_id if is_dine_in else None,
            booking_time=datetime.now(self.tz).strftime("%d/%m/%Y %H:%M") if is_dine_in else None,
            discount_code=request.discount.code if request.discount else None,
            notes=contact.notes.strip() or None,
        )

        try:
            order = await self.orders.create_order(order_data)
        except OrderServiceError as e:
            logger.error(f"Erro ao criar pedido do carrinho {cart.id}: {e}")
            return CheckoutResult(success=False, message="Ocorreu um erro ao fazer o pedido!")

        self._session_emails[order.id] = contact.email.strip()

        if is_dine_in:
            await self._reserve_table(request.table_id, order.id)

        if payment_type in GATEWAY_PAYMENT_TYPES:
            return await self._start_gateway_payment(order, contact.email.strip())

        cleared = await self._clear_cart()
        return CheckoutResult(
            success=True,
            message="Pedido realizado com sucesso! Pague na entrega.",
            order=order,
            cart_cleared=cleared,
        )

    async def _reserve_table(self, table_id: str, order_id: str) -> None:
        # Efeito colateral: falha aqui nunca desfaz o pedido
        try:
            await self.tables.change_status(table_id, TableStatus.RESERVED)
        except OrderServiceError as e:
            logger.warning(f"Não foi possível reservar a mesa {table_id} do pedido {order_id}: {e}")

    async def _start_gateway_payment(self, order: Order, email: str) -> CheckoutResult:
        try:
            pay_url = await self.orders.create_payment_link(order.id, email)
        except OrderServiceError as e:
            logger.error(f"Erro ao criar link de pagamento do pedido {order.id}: {e}")
            pay_url = None

        if not pay_url:
            # Pedido fica pendente e sem pagamento; cancelamento é manual
            return CheckoutResult(
                success=False,
                message="Não foi possível criar o link de pagamento!",
                order=order,
            )

        cleared = await self._clear_cart()
        logger.info(f"Pedido {order.id} redirecionado ao gateway de pagamento")
        return CheckoutResult(
            success=True,
            message="Redirecionando para o pagamento...",
            order=order,
            redirect_url=pay_url,
            cart_cleared=cleared,
        )

    async def _clear_cart(self) -> bool:
        try:
            await self.carts.clear_cart()
        except OrderServiceError as e:
            logger.error(f"Erro ao limpar o carrinho: {e}")
            return False
        return True

    async def handle_gateway_return(self, params: Mapping[str, str]) -> PaymentReturnResult:
        """
        Trata o redirecionamento de volta do gateway.

        A confirmação no backend é só uma dica de reconciliação: se ela
        falhar, o usuário ainda vê sucesso porque o gateway já aprovou.
        """
        order_id = extract_gateway_order_id(params)
        result_code = params.get("resultCode")

        if not order_id:
            if result_code is not None and result_code != "0":
                return PaymentReturnResult(success=False, message=params.get("message") or PAYMENT_FAILED_MESSAGE)
            success = result_code == "0"
            return PaymentReturnResult(
                success=success,
                message=PAYMENT_SUCCESS_MESSAGE if success else PAYMENT_FAILED_MESSAGE,
            )

        if order_id in self._confirmed:
            logger.info(f"Pagamento do pedido {order_id} já confirmado nesta sessão")
            return PaymentReturnResult(success=True, message=PAYMENT_SUCCESS_MESSAGE,
                                       order_id=order_id, confirmed=True)

        email = params.get("email") or self._session_emails.get(order_id, "")
        try:
            await self.orders.confirm_payment(order_id, email)
        except OrderServiceError as e:
            logger.warning(f"Confirmação do pagamento do pedido {order_id} falhou, reconciliação adiada: {e}")
            return PaymentReturnResult(success=True, message=PAYMENT_SUCCESS_MESSAGE,
                                       order_id=order_id, confirmed=False)

        self._confirmed.add(order_id)
        return PaymentReturnResult(success=True, message=PAYMENT_SUCCESS_MESSAGE,
                                   order_id=order_id, confirmed=True)
