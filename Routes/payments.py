from dataclasses import asdict
from fastapi import APIRouter, Depends, Request
import logging

from Services.checkout_service import CheckoutOrchestrator

router = APIRouter(prefix="/payment", tags=["payment"])
logger = logging.getLogger(__name__)


def get_checkout(request: Request) -> CheckoutOrchestrator:
    return request.app.state.services.checkout


@router.get("/result")
async def payment_result(request: Request, checkout: CheckoutOrchestrator = Depends(get_checkout)):
    """
    Retorno do gateway de pagamento (redirect GET com os parâmetros do gateway)
    """
    result = await checkout.handle_gateway_return(dict(request.query_params))
    logger.info(f"Retorno do gateway: pedido={result.order_id} sucesso={result.success} confirmado={result.confirmed}")
    return asdict(result)
