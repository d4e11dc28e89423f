from dotenv import load_dotenv
import logging
import os

# Carrega variáveis do .env
load_dotenv()

# Serviço de pedidos (backend externo)
ORDER_API_URL = os.getenv("ORDER_API_URL", "http://localhost:3001")
ORDER_API_TOKEN = os.getenv("ORDER_API_TOKEN", "")

# Canal de notificações
SOCKET_URL = os.getenv("SOCKET_URL", "http://localhost:3001")
SOCKET_TRANSPORTS = ("websocket", "polling")
SOCKET_RECONNECT_ATTEMPTS = int(os.getenv("SOCKET_RECONNECT_ATTEMPTS", "10"))
SOCKET_RECONNECT_DELAY = float(os.getenv("SOCKET_RECONNECT_DELAY", "2"))
SOCKET_CONNECT_TIMEOUT = float(os.getenv("SOCKET_CONNECT_TIMEOUT", "20"))
ADMIN_JOIN_EVENT = "admin:join"
ADMIN_LEAVE_EVENT = "admin:leave"

# Alerta sonoro
ALERT_DURATION_MS = int(os.getenv("ALERT_DURATION_MS", "5000"))
ALERT_SOUND_URL = os.getenv(
    "ALERT_SOUND_URL",
    "https://assets.mixkit.co/active_storage/sfx/2869/2869-preview.mp3",
)

# Cache de pedidos do admin
CACHE_STALENESS_WINDOW = float(os.getenv("CACHE_STALENESS_WINDOW", "0.5"))
ADMIN_ORDERS_QUERY_KEY = "admin-orders"

# Estatísticas
TIMEZONE = os.getenv("TZ", "Asia/Ho_Chi_Minh")
TOP_DISHES_LIMIT = 5
BOOKING_HOURS = range(8, 23)

# Retorno do gateway: ordem de prioridade dos parâmetros com o id do pedido
GATEWAY_ORDER_ID_PARAMS = ("orderInfo", "orderId", "id")

# Timeouts
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def setup_logging():
    """Configura o logging da aplicação"""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
