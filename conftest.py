import pytest


@pytest.fixture
def alert_events():
    """Registro do sink do alerta: True ao tocar, False ao parar"""
    return []
