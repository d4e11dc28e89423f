from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from .orders import DeliveryOption, DishRef, PaymentType


class CartItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    dish: DishRef = Field(alias="dishId")
    quantity: int = Field(ge=0)

    @property
    def line_total(self) -> float:
        return self.dish.unit_price * self.quantity


class Cart(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    items: List[CartItem] = Field(default_factory=list)

    @property
    def subtotal(self) -> float:
        return sum(item.line_total for item in self.items)


class Discount(BaseModel):
    code: str
    percentage: float = Field(ge=0, le=100)


class ContactInfo(BaseModel):
    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""


class CheckoutRequest(BaseModel):
    """Dados do formulário de checkout/reserva"""
    contact: ContactInfo
    payment_method: PaymentType = PaymentType.COD
    delivery_option: DeliveryOption = DeliveryOption.DELIVERY
    table_id: Optional[str] = None
    discount: Optional[Discount] = None
