from typing import Dict, List, Optional
from tickerbar.core.errors import AlreadyTracked
from tickerbar.core.logger import logger
from tickerbar.core.models import TickerDetails, TickerUpdate, TrackedPair


class SubscriptionRegistry:
    """
    The set of symbols the user wants streamed, plus the pair selected for display.

    The registry is the source of truth for subscriptions: the ConnectionManager
    re-sends a subscribe for every symbol listed here on each (re)connect.
    Only the registry mutates its pairs.
    """

    def __init__(self, symbols: Optional[List[str]] = None, selected: Optional[str] = None):
        self._pairs: Dict[str, TrackedPair] = {}
        self._selected: Optional[str] = None
        self._wire = None  # ConnectionManager, bound later
        for symbol in symbols or []:
            if symbol.upper() not in self._pairs:
                self._pairs[symbol.upper()] = TrackedPair(symbol=symbol.upper())
        if selected and selected.upper() in self._pairs:
            self._selected = selected.upper()

    def bind(self, wire):
        """Attach the connection that subscribe/unsubscribe are delegated to."""
        self._wire = wire

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._pairs

    def __len__(self) -> int:
        return len(self._pairs)

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    def list(self) -> List[str]:
        return list(self._pairs)

    def pairs(self) -> List[TrackedPair]:
        return [pair.model_copy() for pair in self._pairs.values()]

    def get(self, symbol: str) -> Optional[TrackedPair]:
        pair = self._pairs.get(symbol.upper())
        return pair.model_copy() if pair else None

    def add(self, symbol: str) -> TrackedPair:
        key = symbol.upper()
        if key in self._pairs:
            raise AlreadyTracked(key)
        pair = TrackedPair(symbol=key)
        self._pairs[key] = pair
        logger.info(f"Tracking {key}", extra={"symbol": key})
        return pair.model_copy()

    def remove(self, symbol: str) -> bool:
        key = symbol.upper()
        if self._pairs.pop(key, None) is None:
            return False
        logger.info(f"Stopped tracking {key}", extra={"symbol": key})
        if self._selected == key:
            self._selected = next(iter(self._pairs), None)
        return True

    def select(self, symbol: Optional[str]) -> Optional[str]:
        if symbol is not None and symbol.upper() not in self._pairs:
            raise KeyError(symbol)
        self._selected = symbol.upper() if symbol else None
        logger.info(f"Selected pair: {self._selected or 'None'}")
        return self._selected

    def apply_ticker(self, update: TickerUpdate) -> Optional[TrackedPair]:
        pair = self._pairs.get(update.symbol)
        if pair is None:
            return None
        pair.last_price = str(update.last)
        pair.change_24h = update.change_24h
        if update.details is not None and not update.details.is_empty():
            pair.details = update.details
        pair.updated_at = update.received_at
        return pair.model_copy()

    def apply_details(self, symbol: str, details: TickerDetails) -> bool:
        pair = self._pairs.get(symbol.upper())
        if pair is None:
            return False
        pair.details = details
        return True

    async def subscribe(self, symbol: str):
        if self._wire is None:
            logger.debug(f"No connection bound, subscribe to {symbol} deferred")
            return
        await self._wire.subscribe(symbol.upper())

    async def unsubscribe(self, symbol: str):
        if self._wire is None:
            logger.debug(f"No connection bound, unsubscribe from {symbol} deferred")
            return
        await self._wire.unsubscribe(symbol.upper())
