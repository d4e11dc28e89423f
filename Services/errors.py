from typing import Optional


class OrderServiceError(Exception):
    """
    Falha de uma chamada ao serviço de pedidos.

    status_code segue o HTTP; 0 indica falha de transporte (sem resposta).
    """

    def __init__(self, status_code: int, message: str, payload: Optional[dict] = None):
        super().__init__(f"[{status_code}] {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class UnrecognizedResponseError(OrderServiceError):
    """Nenhum formato conhecido de resposta bateu com o corpo recebido"""

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(502, message, payload)


class CheckoutValidationError(ValueError):
    """Dados do checkout incompletos; nenhuma chamada de rede é feita"""

    def __init__(self, message: str, missing_fields=()):
        super().__init__(message)
        self.missing_fields = tuple(missing_fields)
