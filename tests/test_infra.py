import pytest
import json
from decimal import Decimal
from pydantic import ValidationError
from tickerbar.config import Settings, settings

def test_settings_load():
    """Verify settings are loaded from .env (or defaults)"""
    assert settings.APP_NAME == "TickerBar"
    assert settings.OKX_WS_URL.startswith("wss://")
    assert settings.KEEPALIVE_INTERVAL == 25.0
    assert settings.CONNECT_TIMEOUT == 10.0

def test_allowed_ids_parsing():
    assert Settings(TELEGRAM_ALLOWED_IDS="123, 456").TELEGRAM_ALLOWED_IDS == [123, 456]
    assert Settings(TELEGRAM_ALLOWED_IDS=7).TELEGRAM_ALLOWED_IDS == [7]

def test_alert_bounds():
    with pytest.raises(ValidationError):
        Settings(ALERT_THRESHOLD_PERCENT=0)
    with pytest.raises(ValidationError):
        Settings(ALERT_WINDOW_MINUTES=61)

def test_alert_config():
    config = Settings(ALERT_THRESHOLD_PERCENT=2.5, ALERT_WINDOW_MINUTES=10).alert_config()
    assert config.threshold_percent == Decimal("2.5")
    assert config.window_minutes == 10
    assert config.enabled is True

def test_imports():
    """Verify critical dependencies are installed"""
    import fastapi
    import pydantic
    import websockets
    import httpx
    assert fastapi.__version__
    assert pydantic.__version__
    assert websockets.__version__
    assert httpx.__version__

def test_logger_json_format(capsys):
    """Verify logger outputs JSON"""
    from tickerbar.core.logger import setup_logger
    test_logger = setup_logger("test_json")
    test_logger.info("Test Log Message", extra={"symbol": "BTC-USDT"})

    captured = capsys.readouterr()
    lines = [l for l in captured.out.strip().split('\n') if l]
    assert lines

    data = json.loads(lines[-1])
    assert data["message"] == "Test Log Message"
    assert data["level"] == "INFO"
    assert data["symbol"] == "BTC-USDT"
    assert "timestamp" in data
