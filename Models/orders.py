from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Union
from datetime import datetime
import enum

from .tables import TableStatus


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryOption(str, enum.Enum):
    DINE_IN = "dine-in"
    DELIVERY = "delivery"
    PICKUP = "pickup"


class PaymentType(str, enum.Enum):
    CASH = "cash"
    COD = "cod"
    CARD = "card"
    MOMO = "momo"
    ONLINE = "online"
    ZALOPAY = "zalopay"
    UNSET = "unset"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
PAID_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.COMPLETED})

# Pagamentos que redirecionam para um gateway externo
GATEWAY_PAYMENT_TYPES = frozenset({PaymentType.MOMO, PaymentType.ONLINE, PaymentType.ZALOPAY})


class DishRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    name: str = ""
    price: float = 0
    final_price: Optional[float] = Field(default=None, alias="finalPrice")
    image: str = ""

    @property
    def unit_price(self) -> float:
        """Preço efetivo do prato (finalPrice tem prioridade sobre price)"""
        if self.final_price is not None:
            return self.final_price
        return self.price


class CartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    dish: Union[DishRef, str] = Field(alias="dishId")
    quantity: int = Field(ge=0)
    price: Optional[float] = None

    @property
    def dish_id(self) -> str:
        return self.dish if isinstance(self.dish, str) else self.dish.id

    @property
    def unit_price(self) -> float:
        if self.price is not None:
            return self.price
        if isinstance(self.dish, DishRef):
            return self.dish.unit_price
        return 0

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    items: List[CartLine] = Field(default_factory=list)
    total_price: Optional[float] = Field(default=None, alias="totalPrice")


class CustomerRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    username: str = ""
    email: str = ""
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")


class TableRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    table_number: Optional[int] = Field(default=None, alias="tableNumber")
    position: str = ""
    status: Optional[TableStatus] = None


class Order(BaseModel):
    """
    Pedido como exposto pelo serviço de pedidos.

    Referências (userId, tableId, cartId) podem chegar populadas ou apenas
    como o identificador. Campos desconhecidos são preservados para que o
    snapshot volte ao formato original sem perdas.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    order_code: Optional[str] = Field(default=None, alias="orderId")
    customer: Union[CustomerRef, str, None] = Field(default=None, alias="userId")
    table: Union[TableRef, str, None] = Field(default=None, alias="tableId")
    cart: Union[CartSnapshot, str, None] = Field(default=None, alias="cartId")
    status: OrderStatus = OrderStatus.PENDING
    payed: bool = False
    delivery_option: DeliveryOption = Field(default=DeliveryOption.DELIVERY, alias="deliveryOptions")
    type_of_payment: PaymentType = Field(default=PaymentType.UNSET, alias="typeOfPayment")
    total_price: float = Field(default=0, alias="totalPrice", ge=0)
    delivery_address: Optional[str] = Field(default=None, alias="deleveryAddress")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    booking_time: Optional[str] = Field(default=None, alias="bookingTime")
    check_in_time: Optional[datetime] = Field(default=None, alias="checkInTime")
    check_out_time: Optional[datetime] = Field(default=None, alias="checkOutTime")

    @field_validator("type_of_payment", mode="before")
    @classmethod
    def _missing_payment_type(cls, value):
        if value is None or value == "":
            return PaymentType.UNSET
        return value

    @property
    def customer_id(self) -> Optional[str]:
        if isinstance(self.customer, CustomerRef):
            return self.customer.id
        return self.customer

    @property
    def table_id(self) -> Optional[str]:
        if isinstance(self.table, TableRef):
            return self.table.id
        return self.table

    @property
    def cart_lines(self) -> List[CartLine]:
        if isinstance(self.cart, CartSnapshot):
            return self.cart.items
        return []

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)


def is_paid(order: Order) -> bool:
    """
    Um pedido conta como pago se o backend marcou `payed` ou se o status já
    é confirmado/concluído (backends que esquecem de marcar o flag).
    """
    return order.payed or order.status in PAID_STATUSES


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: OrderStatus, new_status: OrderStatus) -> bool:
    """
    Valida uma mudança de status feita pelo admin.

    Estados terminais não saem mais; regressões (confirmed -> pending) ficam
    a cargo do backend.
    """
    if current == new_status:
        return True
    return not is_terminal(current)
