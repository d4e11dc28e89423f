import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import ALERT_DURATION_MS, ALERT_SOUND_URL, setup_logging
from Routes import checkout, orders, payments
from Services.admin_console import AdminOrderConsole
from Services.alerts import AlertPlayer
from Services.api_client import ApiClient
from Services.cart_client import CartClient
from Services.checkout_service import CheckoutOrchestrator
from Services.notification_channel import NotificationChannel
from Services.order_cache import OrderCache
from Services.order_client import OrderStoreClient
from Services.socketio_transport import SocketIOTransport
from Services.table_client import TableClient

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    checkout: CheckoutOrchestrator
    console: AdminOrderConsole
    channel: NotificationChannel


def build_services() -> AppServices:
    """Monta o grafo de serviços com a configuração do .env"""
    api = ApiClient()
    order_client = OrderStoreClient(api)
    channel = NotificationChannel(SocketIOTransport, alert=AlertPlayer(ALERT_SOUND_URL))
    cache = OrderCache()
    return AppServices(
        checkout=CheckoutOrchestrator(order_client, CartClient(api), TableClient(api)),
        console=AdminOrderConsole(order_client, channel, cache, alert_duration_ms=ALERT_DURATION_MS),
        channel=channel,
    )


def create_app(services: Optional[AppServices] = None, open_console: bool = True) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        app.state.services = services or build_services()
        console_task = None
        if open_console:
            # Conexão do canal pode demorar (tentativas de reconexão); não trava o startup
            console_task = asyncio.create_task(app.state.services.console.open())
        logger.info("API de pedidos iniciada")
        yield
        if console_task is not None and not console_task.done():
            console_task.cancel()
        await app.state.services.console.close()
        await app.state.services.channel.close()
        await app.state.services.console.mutator.wait_reconciled()
        logger.info("API de pedidos encerrada")

    app = FastAPI(
        title="Restaurante Pedidos API",
        description="Checkout, pagamento e painel de pedidos em tempo real",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(checkout.router)
    app.include_router(payments.router)
    app.include_router(orders.router)

    @app.get("/")
    def root():
        return {"message": "API de pedidos está funcionando!"}

    return app


app = create_app()
