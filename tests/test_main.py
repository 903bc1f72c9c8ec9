from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from tickerbar.core.alerts import PriceAlertEngine
from tickerbar.core.connection import ConnectionManager
from tickerbar.core.models import TickerUpdate
from tickerbar.core.registry import SubscriptionRegistry
from tickerbar.core.tracker import TickerTracker
from tickerbar.main import app, build_tracker

def test_build_tracker_wires_components():
    tracker = build_tracker()

    assert tracker.registry._wire is tracker.connection
    assert tracker.engine.notifier is tracker.notifier
    assert tracker.notifier.tracker is tracker
    assert tracker.on_ticker in tracker.connection.listeners

def test_status_route():
    registry = SubscriptionRegistry(["BTC-USDT", "ETH-USDT"], selected="BTC-USDT")
    connection = ConnectionManager(registry, transport_factory=MagicMock())
    tracker = TickerTracker(registry, connection, PriceAlertEngine())
    registry.apply_ticker(TickerUpdate(symbol="BTC-USDT", last="43000.1", open_24h="42000"))

    app.state.tracker = tracker
    # No context manager: the lifespan (network connections) is not started
    client = TestClient(app)
    response = client.get("/status")

    assert response.status_code == 200
    body = response.json()
    assert body["connection"] == "disconnected"
    assert body["selected"] == "BTC-USDT"
    assert body["menu_bar"] == "..."
    assert [p["symbol"] for p in body["pairs"]] == ["BTC-USDT", "ETH-USDT"]
    assert body["pairs"][0]["last_price"] == "43000.1"
