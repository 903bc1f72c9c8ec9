import json
from typing import Union
from pydantic import ValidationError
from tickerbar.core.errors import DecodeFailed
from tickerbar.core.logger import logger
from tickerbar.core.models import (
    Pong,
    SubscribeAck,
    TickerDetails,
    TickerUpdate,
    Unrecognized,
    VenueError,
)

MarketEvent = Union[TickerUpdate, SubscribeAck, VenueError, Pong, Unrecognized]

TICKER_CHANNEL = "tickers"
DETAIL_KEYS = ("high24h", "low24h", "vol24h", "volCcy24h", "sodUtc0", "sodUtc8", "idxPx")


class MarketDataParser:
    """
    Classifies OKX public websocket frames.
    parse() never raises: anything it cannot make sense of becomes Unrecognized.
    """

    def parse(self, frame) -> MarketEvent:
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")

        if frame == "pong":
            return Pong()

        try:
            return self._decode(frame)
        except DecodeFailed as e:
            logger.debug(f"Unrecognized frame ({e.reason}): {frame[:200]}")
            return Unrecognized(raw=frame, reason=e.reason)

    def _decode(self, frame: str) -> MarketEvent:
        try:
            data = json.loads(frame)
        except (TypeError, ValueError) as e:
            raise DecodeFailed(frame, f"invalid json: {e}")
        except RecursionError:
            raise DecodeFailed(frame, "json nested too deeply")

        if not isinstance(data, dict):
            raise DecodeFailed(frame, "not a json object")

        event = data.get("event")
        if event == "error":
            return VenueError(code=str(data.get("code", "")), message=str(data.get("msg", "")))
        if event == "subscribe":
            arg = data.get("arg")
            if not isinstance(arg, dict) or not arg.get("instId"):
                raise DecodeFailed(frame, "subscribe ack without instId")
            return SubscribeAck(symbol=str(arg["instId"]).upper(), channel=str(arg.get("channel", TICKER_CHANNEL)))
        if event is not None:
            raise DecodeFailed(frame, f"unhandled event '{event}'")

        rows = data.get("data")
        if not isinstance(rows, list) or not rows:
            raise DecodeFailed(frame, "no data rows")

        arg = data.get("arg") or {}
        if isinstance(arg, dict) and arg.get("channel", TICKER_CHANNEL) != TICKER_CHANNEL:
            raise DecodeFailed(frame, f"unexpected channel '{arg.get('channel')}'")

        return self._ticker(frame, rows[0])

    def _ticker(self, frame: str, row) -> TickerUpdate:
        if not isinstance(row, dict):
            raise DecodeFailed(frame, "data row is not an object")

        details = None
        if any(key in row for key in DETAIL_KEYS):
            details = TickerDetails.model_validate({k: row.get(k) for k in DETAIL_KEYS})

        try:
            return TickerUpdate(
                symbol=row.get("instId"),
                last=row.get("last"),
                open_24h=row.get("open24h"),
                details=details,
            )
        except ValidationError as e:
            raise DecodeFailed(frame, f"invalid ticker: {e.error_count()} error(s)")
