from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List

from .orders import Order


class ApiEnvelope(BaseModel):
    """Envelope padrão das respostas do serviço: { message, statusCode, metadata }"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    message: str = ""
    status_code: int = Field(default=200, alias="statusCode")
    metadata: Any = None


class OrderPage(BaseModel):
    orders: List[Order] = Field(default_factory=list)
    total: int = 0
    total_pages: int = 1
    current_page: int = 1
