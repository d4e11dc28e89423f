import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from config import ORDER_API_TOKEN, ORDER_API_URL, REQUEST_TIMEOUT
from Services.errors import OrderServiceError

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Cliente HTTP do serviço de pedidos.

    Só monta a requisição e desembrulha o envelope { message, statusCode,
    metadata }. Não faz retries: a política de retry é de quem chama.
    As chamadas bloqueantes do requests rodam em thread para não travar
    o event loop.
    """

    def __init__(self, base_url: str = ORDER_API_URL, token: Optional[str] = ORDER_API_TOKEN,
                 timeout: float = REQUEST_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Content-Type": "application/json"
        }

    def _get_headers(self) -> Dict[str, str]:
        headers = dict(self.headers)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
              json: Optional[Any] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._get_headers(),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Falha de transporte em {method} {path}: {e}")
            raise OrderServiceError(0, f"Serviço de pedidos indisponível: {e}") from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {"message": resp.text}

        if not 200 <= resp.status_code < 300:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(f"Erro em {method} {path}: {resp.status_code} - {message or resp.text}")
            raise OrderServiceError(resp.status_code, message or resp.reason or "Erro no serviço de pedidos",
                                    body if isinstance(body, dict) else {})

        if not isinstance(body, dict):
            return {"metadata": body}
        return body

    async def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                      json: Optional[Any] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self._send, method, path, params, json)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Optional[Any] = None) -> Dict[str, Any]:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Optional[Any] = None) -> Dict[str, Any]:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Dict[str, Any]:
        return await self.request("DELETE", path)
