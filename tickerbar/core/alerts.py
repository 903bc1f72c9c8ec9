from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from tickerbar.config import settings
from tickerbar.core.logger import logger
from tickerbar.core.models import (
    AlertConfig,
    PriceAlert,
    PriceHistory,
    PriceSample,
    TickerUpdate,
    utcnow,
)


class PriceAlertEngine:
    """
    Rolling per-symbol price history with swing alerts.

    The swing is measured between the oldest and newest sample still inside
    the window, so it reports net drift over the window; a spike that reverts
    before the next sample is not seen. A symbol alerts at most once per window.
    """

    def __init__(self, config: Optional[AlertConfig] = None, notifier=None):
        self.config = config or settings.alert_config()
        self.notifier = notifier
        self._histories: Dict[str, PriceHistory] = {}

    def set_config(self, config: AlertConfig):
        # Applies from the next sample; already pruned history is not rebuilt
        self.config = config
        logger.info(
            f"Alert config: enabled={config.enabled} "
            f"threshold={config.threshold_percent}% window={config.window_minutes}m"
        )

    def samples(self, symbol: str) -> List[PriceSample]:
        history = self._histories.get(symbol.upper())
        return [s.model_copy() for s in history.samples] if history else []

    def last_alert_at(self, symbol: str) -> Optional[datetime]:
        history = self._histories.get(symbol.upper())
        return history.last_alert_at if history else None

    def forget(self, symbol: str):
        self._histories.pop(symbol.upper(), None)

    def record(self, symbol: str, price: Decimal, now: Optional[datetime] = None) -> Optional[PriceAlert]:
        now = now or utcnow()
        config = self.config
        key = symbol.upper()

        history = self._histories.get(key)
        if history is None:
            history = self._histories[key] = PriceHistory(symbol=key)

        history.samples.append(PriceSample(timestamp=now, price=price))
        self._prune(history, now - config.window)

        if not config.enabled:
            return None
        if history.last_alert_at is not None and now - history.last_alert_at <= config.window:
            return None

        alert = self._check_swing(history, config, now)
        if alert:
            history.last_alert_at = now
        return alert

    async def on_ticker(self, update: TickerUpdate, now: Optional[datetime] = None) -> Optional[PriceAlert]:
        alert = self.record(update.symbol, update.last, now or update.received_at)
        if alert:
            logger.warning(f"PRICE ALERT: {alert.body}", extra={"symbol": alert.symbol})
            await self._notify(alert)
        return alert

    async def _notify(self, alert: PriceAlert):
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(alert.title, alert.body)
        except Exception as e:
            logger.error(f"Alert notification failed for {alert.symbol}: {e}")

    @staticmethod
    def _prune(history: PriceHistory, cutoff: datetime):
        stale = 0
        for sample in history.samples:
            if sample.timestamp >= cutoff:
                break
            stale += 1
        if stale:
            del history.samples[:stale]

    @staticmethod
    def _check_swing(history: PriceHistory, config: AlertConfig, now: datetime) -> Optional[PriceAlert]:
        if len(history.samples) < 2:
            return None

        oldest = history.samples[0].price
        newest = history.samples[-1].price
        if oldest == 0:
            return None

        pct = (newest - oldest) / oldest * 100
        if abs(pct) < config.threshold_percent:
            return None

        return PriceAlert(
            symbol=history.symbol,
            direction="up" if pct > 0 else "down",
            pct=pct,
            current_price=newest,
            window_minutes=config.window_minutes,
            at=now,
        )
