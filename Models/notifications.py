from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime
import enum


class NotificationType(str, enum.Enum):
    ORDER_NEW = "order:new"
    PAYMENT_SUCCESS = "payment:success"
    ORDER_STATUS_UPDATE = "order:statusUpdate"


class NotificationEnvelope(BaseModel):
    """
    Evento recebido pelo canal de notificações.

    Não há número de sequência nem garantia de entrega: duplicados e
    eventos fora de ordem são esperados.
    """
    model_config = ConfigDict(extra="allow")

    type: NotificationType
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.data.get("_id") or self.data.get("id")
