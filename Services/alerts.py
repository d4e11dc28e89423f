import asyncio
import logging
import sys
from typing import Callable, Optional

from config import ALERT_DURATION_MS, ALERT_SOUND_URL

logger = logging.getLogger(__name__)


def terminal_bell(playing: bool) -> None:
    if playing:
        sys.stdout.write("\a")
        sys.stdout.flush()


class AlertPlayer:
    """
    Alerta sonoro de novos pedidos com duração limitada.

    O som em si é um efeito externo (sink); aqui só se controla quando
    começa e quando para.
    """

    def __init__(self, sound_url: str = ALERT_SOUND_URL, sink: Optional[Callable[[bool], None]] = None):
        self.sound_url = sound_url
        self.sink = sink or terminal_bell
        self.is_playing = False
        self._stop_handle: Optional[asyncio.TimerHandle] = None

    def play(self, duration_ms: int = ALERT_DURATION_MS) -> None:
        # Reinicia do começo se já estiver tocando
        self._cancel_timer()
        self.is_playing = True
        try:
            self.sink(True)
        except Exception as e:
            logger.warning(f"Não foi possível tocar o alerta: {e}")

        loop = asyncio.get_running_loop()
        self._stop_handle = loop.call_later(max(duration_ms, 0) / 1000, self.stop)
        logger.debug(f"Alerta tocando por {duration_ms}ms")

    def stop(self) -> None:
        self._cancel_timer()
        if not self.is_playing:
            return
        self.is_playing = False
        try:
            self.sink(False)
        except Exception as e:
            logger.warning(f"Não foi possível parar o alerta: {e}")

    def _cancel_timer(self) -> None:
        if self._stop_handle is not None:
            self._stop_handle.cancel()
            self._stop_handle = None
