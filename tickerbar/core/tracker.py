from decimal import Decimal
from typing import Optional
from tickerbar.config import ALERT_THRESHOLD_RANGE, ALERT_WINDOW_RANGE
from tickerbar.core.alerts import PriceAlertEngine
from tickerbar.core.connection import ConnectionManager
from tickerbar.core.display import menu_bar_text
from tickerbar.core.errors import AlreadyTracked, InvalidSymbol, SymbolError, SymbolNotFound
from tickerbar.core.logger import logger
from tickerbar.core.models import AddResult, AlertConfig, TickerUpdate
from tickerbar.core.registry import SubscriptionRegistry
from tickerbar.core.symbols import is_valid_symbol, normalize_symbol

TEST_TITLE = "Price Alert Test"
TEST_BODY = "This is a test notification. If you can see it, notifications are working."


class TickerTracker:
    """
    Composes the registry, connection and alert engine, and talks to the
    collaborators: symbol validation, details fetch, state storage and notifier.
    """

    def __init__(self, registry: SubscriptionRegistry, connection: ConnectionManager,
                 engine: PriceAlertEngine, validator=None, details=None, store=None, notifier=None):
        self.registry = registry
        self.connection = connection
        self.engine = engine
        self.validator = validator
        self.details = details
        self.store = store
        self.notifier = notifier
        connection.add_listener(self.on_ticker)

    async def load(self):
        """Restore the saved pairs. Subscriptions go out once the connection is up."""
        if self.store is None:
            return
        symbols, selected = await self.store.load()
        for symbol in symbols:
            symbol = normalize_symbol(symbol)
            if not is_valid_symbol(symbol) or symbol in self.registry:
                continue
            self.registry.add(symbol)
            await self.registry.subscribe(symbol)
        if selected and selected in self.registry:
            self.registry.select(selected)

    async def save(self):
        if self.store is not None:
            await self.store.save(self.registry.list(), self.registry.selected)

    async def add_symbol(self, raw: str) -> AddResult:
        symbol = normalize_symbol(raw)
        try:
            if not is_valid_symbol(symbol):
                raise InvalidSymbol(symbol)
            if symbol in self.registry:
                raise AlreadyTracked(symbol)
            if self.validator is not None and not await self.validator.symbol_exists(symbol):
                raise SymbolNotFound(symbol)
            self.registry.add(symbol)
        except SymbolError as e:
            logger.info(f"Add rejected: {e.message}", extra={"symbol": symbol})
            return AddResult(success=False, message=e.message)

        if self.registry.selected is None:
            self.registry.select(symbol)

        await self.registry.subscribe(symbol)
        await self.save()
        await self.refresh_details(symbol)
        return AddResult(success=True, message=f"Now tracking {symbol}")

    async def remove_symbol(self, raw: str) -> bool:
        symbol = normalize_symbol(raw)
        if not self.registry.remove(symbol):
            return False
        self.engine.forget(symbol)
        await self.registry.unsubscribe(symbol)
        await self.save()
        return True

    async def select_symbol(self, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            self.registry.select(None)
            await self.save()
            return None

        symbol = normalize_symbol(raw)
        if symbol not in self.registry:
            return None
        self.registry.select(symbol)
        await self.save()
        await self.refresh_details(symbol)
        return symbol

    async def on_ticker(self, update: TickerUpdate):
        if update.symbol not in self.registry:
            return
        self.registry.apply_ticker(update)
        await self.engine.on_ticker(update)

    async def refresh_details(self, symbol: str) -> bool:
        if self.details is None:
            return False
        details = await self.details.fetch_details(symbol)
        if details is None:
            return False
        return self.registry.apply_details(symbol, details)

    async def refresh_connection(self):
        logger.info("Connection refresh requested")
        await self.connection.force_reconnect()

    def configure_alerts(self, enabled: bool, threshold_percent: Optional[Decimal] = None,
                         window_minutes: Optional[int] = None) -> AlertConfig:
        """Change alert settings at runtime. Omitted values keep their current setting."""
        current = self.engine.config
        threshold = current.threshold_percent if threshold_percent is None else Decimal(threshold_percent)
        window = current.window_minutes if window_minutes is None else int(window_minutes)

        low, high = ALERT_THRESHOLD_RANGE
        if not Decimal(str(low)) <= threshold <= Decimal(str(high)):
            raise ValueError(f"Threshold must be between {low}% and {high}%")
        low, high = ALERT_WINDOW_RANGE
        if not low <= window <= high:
            raise ValueError(f"Window must be between {low} and {high} minutes")

        config = AlertConfig(enabled=enabled, threshold_percent=threshold, window_minutes=window)
        self.engine.set_config(config)
        return config

    async def send_test_notification(self):
        if self.notifier is None:
            logger.info(f"[NOTIFY] {TEST_TITLE}: {TEST_BODY}")
            return
        try:
            await self.notifier.notify(TEST_TITLE, TEST_BODY)
        except Exception as e:
            logger.error(f"Test notification failed: {e}")

    def menu_bar_text(self) -> str:
        return menu_bar_text(self.registry.pairs(), self.registry.selected, self.connection.state)
