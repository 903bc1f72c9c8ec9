import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from tickerbar.core.errors import AlreadyTracked
from tickerbar.core.models import TickerDetails, TickerUpdate
from tickerbar.core.registry import SubscriptionRegistry

def test_add_and_list():
    registry = SubscriptionRegistry()
    registry.add("BTC-USDT")
    registry.add("ETH-USDT")

    assert registry.list() == ["BTC-USDT", "ETH-USDT"]
    assert "btc-usdt" in registry
    assert len(registry) == 2

def test_add_duplicate_any_case_is_rejected():
    registry = SubscriptionRegistry()
    registry.add("BTC-USDT")

    with pytest.raises(AlreadyTracked) as exc:
        registry.add("btc-usdt")

    assert "BTC-USDT" in exc.value.message
    assert registry.list() == ["BTC-USDT"]

def test_remove_selected_falls_back_to_first_remaining():
    registry = SubscriptionRegistry(["BTC-USDT", "ETH-USDT", "SOL-USDT"], selected="ETH-USDT")

    assert registry.remove("ETH-USDT") is True
    assert registry.selected == "BTC-USDT"

def test_remove_last_clears_selection():
    registry = SubscriptionRegistry(["BTC-USDT"], selected="BTC-USDT")
    registry.remove("BTC-USDT")

    assert registry.selected is None
    assert registry.list() == []

def test_remove_unselected_keeps_selection():
    registry = SubscriptionRegistry(["BTC-USDT", "ETH-USDT"], selected="ETH-USDT")
    registry.remove("BTC-USDT")
    assert registry.selected == "ETH-USDT"

def test_remove_unknown_symbol():
    registry = SubscriptionRegistry(["BTC-USDT"])
    assert registry.remove("DOGE-USDT") is False
    assert registry.list() == ["BTC-USDT"]

def test_select_unknown_symbol_raises():
    registry = SubscriptionRegistry(["BTC-USDT"])
    with pytest.raises(KeyError):
        registry.select("ETH-USDT")

def test_initial_selection_must_be_tracked():
    registry = SubscriptionRegistry(["BTC-USDT"], selected="ETH-USDT")
    assert registry.selected is None

def test_apply_ticker_updates_price_and_change():
    registry = SubscriptionRegistry(["BTC-USDT"])
    update = TickerUpdate(
        symbol="BTC-USDT", last="110", open_24h="100",
        details=TickerDetails(high_24h="120"),
    )

    pair = registry.apply_ticker(update)

    assert pair.last_price == "110"
    assert pair.change_24h == Decimal("10")
    assert pair.details.high_24h == Decimal("120")

def test_apply_ticker_zero_open_unsets_change():
    registry = SubscriptionRegistry(["BTC-USDT"])
    registry.apply_ticker(TickerUpdate(symbol="BTC-USDT", last="110", open_24h="100"))
    registry.apply_ticker(TickerUpdate(symbol="BTC-USDT", last="111", open_24h="0"))

    pair = registry.get("BTC-USDT")
    assert pair.last_price == "111"
    assert pair.change_24h is None

def test_apply_ticker_ignores_untracked():
    registry = SubscriptionRegistry(["BTC-USDT"])
    assert registry.apply_ticker(TickerUpdate(symbol="ETH-USDT", last="1")) is None

def test_pairs_are_copies():
    registry = SubscriptionRegistry(["BTC-USDT"])
    registry.pairs()[0].last_price = "999"
    assert registry.get("BTC-USDT").last_price is None

def test_apply_details():
    registry = SubscriptionRegistry(["BTC-USDT"])
    assert registry.apply_details("btc-usdt", TickerDetails(low_24h="1")) is True
    assert registry.apply_details("ETH-USDT", TickerDetails()) is False
    assert registry.get("BTC-USDT").details.low_24h == Decimal("1")

@pytest.mark.asyncio
async def test_subscribe_delegates_to_bound_connection():
    registry = SubscriptionRegistry(["BTC-USDT"])
    wire = MagicMock()
    wire.subscribe = AsyncMock()
    wire.unsubscribe = AsyncMock()
    registry.bind(wire)

    await registry.subscribe("btc-usdt")
    await registry.unsubscribe("BTC-USDT")

    wire.subscribe.assert_awaited_once_with("BTC-USDT")
    wire.unsubscribe.assert_awaited_once_with("BTC-USDT")

@pytest.mark.asyncio
async def test_subscribe_without_connection_is_deferred():
    registry = SubscriptionRegistry(["BTC-USDT"])
    # Nothing bound: the registry entry alone covers the next connect
    await registry.subscribe("BTC-USDT")
    assert registry.list() == ["BTC-USDT"]
