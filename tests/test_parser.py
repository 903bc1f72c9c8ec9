import pytest
import json
from decimal import Decimal
from tickerbar.core.models import Pong, SubscribeAck, TickerUpdate, Unrecognized, VenueError
from tickerbar.core.parser import MarketDataParser

parser = MarketDataParser()

def ticker_frame(**row):
    data = {"instId": "BTC-USDT", "last": "43000.1", "open24h": "42000"}
    data.update(row)
    return json.dumps({"arg": {"channel": "tickers", "instId": data["instId"]}, "data": [data]})

def test_ticker_update():
    event = parser.parse(ticker_frame(high24h="44000", low24h="41000", vol24h="1234.5", sodUtc8=""))

    assert isinstance(event, TickerUpdate)
    assert event.symbol == "BTC-USDT"
    assert event.last == Decimal("43000.1")
    assert event.open_24h == Decimal("42000")
    assert event.details.high_24h == Decimal("44000")
    assert event.details.vol_24h == Decimal("1234.5")
    assert event.details.sod_utc8 is None

def test_ticker_without_extended_fields():
    event = parser.parse(ticker_frame())
    assert isinstance(event, TickerUpdate)
    assert event.details is None

def test_change_24h():
    event = parser.parse(ticker_frame(last="105", open24h="100"))
    assert event.change_24h == Decimal("5")

@pytest.mark.parametrize("open24h", ["0", "", "abc", None])
def test_zero_or_malformed_open_leaves_change_unset(open24h):
    event = parser.parse(ticker_frame(open24h=open24h))
    assert isinstance(event, TickerUpdate)
    assert event.change_24h is None

def test_subscribe_ack():
    frame = json.dumps({"event": "subscribe", "arg": {"channel": "tickers", "instId": "eth-usdt"}})
    event = parser.parse(frame)
    assert event == SubscribeAck(symbol="ETH-USDT", channel="tickers")

def test_venue_error():
    frame = json.dumps({"event": "error", "msg": "Wrong URL or channel", "code": "60018"})
    event = parser.parse(frame)
    assert event == VenueError(code="60018", message="Wrong URL or channel")

def test_pong():
    assert isinstance(parser.parse("pong"), Pong)

@pytest.mark.parametrize("frame", [
    "{not json",
    "[1, 2, 3]",
    "null",
    json.dumps({"event": "unsubscribe", "arg": {"channel": "tickers", "instId": "BTC-USDT"}}),
    json.dumps({"event": "subscribe", "arg": {}}),
    json.dumps({"arg": {"channel": "tickers"}, "data": []}),
    json.dumps({"arg": {"channel": "tickers"}, "data": ["oops"]}),
    json.dumps({"arg": {"channel": "tickers"}, "data": [{"instId": "BTC-USDT", "last": ""}]}),
    json.dumps({"arg": {"channel": "tickers"}, "data": [{"instId": "BTC-USDT", "last": "NaN"}]}),
    json.dumps({"arg": {"channel": "tickers"}, "data": [{"last": "100"}]}),
    json.dumps({"arg": {"channel": "books"}, "data": [{"instId": "BTC-USDT", "last": "1"}]}),
    "[" * 100000 + "]" * 100000,
])
def test_garbage_is_unrecognized(frame):
    event = parser.parse(frame)
    assert isinstance(event, Unrecognized)
    assert event.raw == frame
    assert event.reason

def test_bytes_frame():
    event = parser.parse(ticker_frame().encode("utf-8"))
    assert isinstance(event, TickerUpdate)

def test_first_data_row_wins():
    frame = json.dumps({
        "arg": {"channel": "tickers", "instId": "BTC-USDT"},
        "data": [
            {"instId": "BTC-USDT", "last": "1", "open24h": "1"},
            {"instId": "BTC-USDT", "last": "2", "open24h": "1"},
        ],
    })
    assert parser.parse(frame).last == Decimal("1")
