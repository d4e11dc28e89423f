"""
Normalização das respostas do serviço de pedidos e do gateway.

Cada parser tenta os formatos conhecidos em ordem de prioridade e falha
fechado (UnrecognizedResponseError) quando nenhum bate.
"""
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from config import GATEWAY_ORDER_ID_PARAMS
from Models.orders import Order
from Models.responses import ApiEnvelope, OrderPage
from Services.errors import UnrecognizedResponseError

logger = logging.getLogger(__name__)


def _metadata(body: Dict[str, Any]) -> Any:
    return ApiEnvelope.model_validate(body).metadata


def _legacy_data(body: Dict[str, Any]) -> Any:
    return body.get("data")


# Onde o payload pode estar: envelope novo (metadata) e envelope legado (data)
PAYLOAD_LOCATIONS: Tuple[Tuple[str, Callable[[Dict[str, Any]], Any]], ...] = (
    ("metadata", _metadata),
    ("data", _legacy_data),
)


def _page_from_list(items: List[Any]) -> OrderPage:
    orders = [Order.model_validate(item) for item in items]
    return OrderPage(orders=orders, total=len(orders), total_pages=1, current_page=1)


def _page_from_wrapped(payload: Dict[str, Any]) -> OrderPage:
    orders = [Order.model_validate(item) for item in payload["orders"]]
    return OrderPage(
        orders=orders,
        total=int(payload.get("total", len(orders))),
        total_pages=max(int(payload.get("totalPages", 1)), 1),
        current_page=int(payload.get("currentPage", 1)),
    )


def parse_order_page(body: Dict[str, Any]) -> OrderPage:
    """
    Normaliza a lista de pedidos: metadata pode ser uma lista ou um objeto
    { orders, totalPages, currentPage, total }.
    """
    for location, extract in PAYLOAD_LOCATIONS:
        payload = extract(body)
        try:
            if isinstance(payload, list):
                return _page_from_list(payload)
            if isinstance(payload, dict) and isinstance(payload.get("orders"), list):
                return _page_from_wrapped(payload)
        except ValidationError as e:
            logger.error(f"Lista de pedidos em '{location}' com formato inválido: {e}")
            raise UnrecognizedResponseError("Pedido com formato inválido na lista", body) from e
    raise UnrecognizedResponseError("Formato de lista de pedidos não reconhecido", body)


def parse_order(body: Dict[str, Any]) -> Order:
    """Normaliza a resposta de um único pedido"""
    for location, extract in PAYLOAD_LOCATIONS:
        payload = extract(body)
        if isinstance(payload, dict) and "_id" in payload:
            try:
                return Order.model_validate(payload)
            except ValidationError as e:
                logger.error(f"Pedido em '{location}' com formato inválido: {e}")
                raise UnrecognizedResponseError("Pedido com formato inválido", body) from e
    raise UnrecognizedResponseError("Formato de pedido não reconhecido", body)


# Caminhos possíveis da URL de pagamento, em ordem de prioridade
PAYMENT_URL_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("data", "payUrl"),
    ("metadata", "payUrl"),
    ("payUrl",),
    ("data", "shortLink"),
    ("metadata", "shortLink"),
)


def _dig(body: Any, path: Sequence[str]) -> Any:
    current = body
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def extract_payment_url(body: Dict[str, Any]) -> Optional[str]:
    """Procura a URL de redirecionamento do gateway; None se não houver"""
    for path in PAYMENT_URL_PATHS:
        value = _dig(body, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_gateway_order_id(params: Mapping[str, Any],
                             candidates: Sequence[str] = GATEWAY_ORDER_ID_PARAMS) -> Optional[str]:
    """
    Retorna o primeiro parâmetro não vazio que identifica o pedido no
    retorno do gateway (orderInfo > orderId > id).
    """
    for name in candidates:
        value = params.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None
