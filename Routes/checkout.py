from fastapi import APIRouter, Depends, HTTPException, Request, status
import logging

from Models.cart import CheckoutRequest
from Services.checkout_service import CheckoutOrchestrator
from Services.errors import CheckoutValidationError, OrderServiceError

router = APIRouter(prefix="/checkout", tags=["checkout"])
logger = logging.getLogger(__name__)


def get_checkout(request: Request) -> CheckoutOrchestrator:
    return request.app.state.services.checkout


@router.post("", status_code=status.HTTP_201_CREATED)
async def place_order(checkout_data: CheckoutRequest, checkout: CheckoutOrchestrator = Depends(get_checkout)):
    """
    Finaliza o pedido com o carrinho atual do cliente
    """
    try:
        cart = await checkout.carts.get_cart()
        result = await checkout.place_order(cart, checkout_data)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "fields": list(e.missing_fields)})
    except OrderServiceError as e:
        logger.error(f"Erro no checkout: {e}")
        raise HTTPException(status_code=e.status_code or 502, detail=e.message)

    return {
        "success": result.success,
        "message": result.message,
        "order": result.order.to_wire() if result.order else None,
        "redirect_url": result.redirect_url,
        "cart_cleared": result.cart_cleared,
    }
