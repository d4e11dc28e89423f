import logging
from typing import Optional

from Models.cart import Cart
from Services.api_client import ApiClient
from Services.errors import UnrecognizedResponseError

logger = logging.getLogger(__name__)


class CartClient:
    def __init__(self, api: Optional[ApiClient] = None):
        self.api = api or ApiClient()

    async def get_cart(self) -> Cart:
        body = await self.api.get("/carts")
        metadata = body.get("metadata")
        if not isinstance(metadata, dict):
            raise UnrecognizedResponseError("Formato de carrinho não reconhecido", body)
        return Cart.model_validate(metadata)

    async def clear_cart(self) -> None:
        await self.api.delete("/carts/clear")
        logger.info("Carrinho limpo")
