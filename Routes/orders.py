from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from typing import Optional
import logging

from Models.orders import DeliveryOption, OrderStatus, PaymentType
from Services.admin_console import AdminOrderConsole, InvalidTransitionError
from Services.errors import OrderServiceError
from Services.order_views import OrderFilters

router = APIRouter(prefix="/admin", tags=["admin-orders"])
logger = logging.getLogger(__name__)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


def get_console(request: Request) -> AdminOrderConsole:
    return request.app.state.services.console


def _http_error(e: OrderServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code or 502, detail=e.message)


@router.get("/orders")
async def list_orders(
    console: AdminOrderConsole = Depends(get_console),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    payed: Optional[bool] = None,
    delivery_option: Optional[DeliveryOption] = Query(None, alias="deliveryOptions"),
    type_of_payment: Optional[PaymentType] = Query(None, alias="typeOfPayment"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """
    Lista pedidos do cache do painel, filtrados e paginados localmente
    """
    try:
        await console.cache.ensure_fresh(console.key)
    except OrderServiceError as e:
        raise _http_error(e)
    filters = OrderFilters(
        status=status_filter,
        payed=payed,
        delivery_option=delivery_option,
        type_of_payment=type_of_payment,
    )
    result = console.page(filters, page, limit)
    return {
        "orders": [o.to_wire() for o in result.items],
        "page": result.page,
        "limit": result.limit,
        "total": result.total,
        "totalPages": result.total_pages,
    }


@router.patch("/orders/{order_id}/status")
async def update_order_status(order_id: str, status_update: OrderStatusUpdate,
                              console: AdminOrderConsole = Depends(get_console)):
    """
    Atualiza o status de um pedido (otimista, com rollback em caso de erro)
    """
    try:
        order = await console.change_status(order_id, status_update.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderServiceError as e:
        raise _http_error(e)

    if order is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail=f"Já existe uma atualização em andamento para o pedido {order_id}")
    return {"message": "Status atualizado com sucesso", "order": order.to_wire()}


@router.delete("/orders/{order_id}")
async def delete_order(order_id: str, console: AdminOrderConsole = Depends(get_console)):
    try:
        await console.delete_order(order_id)
    except OrderServiceError as e:
        raise _http_error(e)
    return {"message": f"Pedido {order_id} removido com sucesso"}


@router.get("/statistics")
async def get_statistics(console: AdminOrderConsole = Depends(get_console)):
    try:
        await console.cache.ensure_fresh(console.key)
    except OrderServiceError as e:
        raise _http_error(e)
    return asdict(console.statistics())


@router.get("/status")
async def console_status(console: AdminOrderConsole = Depends(get_console)):
    return console.get_status()
