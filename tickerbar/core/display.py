import asyncio
import inspect
from decimal import Decimal
from typing import Callable, Iterable, Optional
from tickerbar.config import settings
from tickerbar.core.logger import logger
from tickerbar.core.models import ConnectionState, TrackedPair
from tickerbar.core.symbols import display_name

PLACEHOLDER = "..."


def format_change(pct: Optional[Decimal]) -> Optional[str]:
    if pct is None:
        return None
    sign = "+" if pct >= 0 else ""
    return f"{sign}{pct:.2f}%"


def menu_bar_text(pairs: Iterable[TrackedPair], selected: Optional[str], state: ConnectionState) -> str:
    """Selected pair's price, else the first pair's, e.g. "BTC: $43000.1"."""
    if state is ConnectionState.DISCONNECTED:
        return PLACEHOLDER

    pairs = list(pairs)
    chosen = next((p for p in pairs if p.symbol == selected), None)
    if chosen is None or chosen.last_price is None:
        chosen = pairs[0] if pairs else None
    if chosen is None or chosen.last_price is None:
        return PLACEHOLDER
    return f"{display_name(chosen.symbol)}: ${chosen.last_price}"


class DisplayRefresher:
    """
    Rate-limited consumer between the tracker and a display.
    Renders at most once per interval and forwards only changed text.
    """

    def __init__(self, render: Callable[[], str], sink: Optional[Callable] = None,
                 interval: Optional[float] = None):
        self.render = render
        self.sink = sink
        self.interval = interval or settings.DISPLAY_REFRESH_INTERVAL
        self.text = PLACEHOLDER
        self.is_running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        if self.is_running:
            return
        self.is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Display refresher started ({self.interval}s)")

    async def stop(self):
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        while self.is_running:
            await self.refresh()
            await asyncio.sleep(self.interval)

    async def refresh(self) -> bool:
        try:
            text = self.render()
        except Exception as e:
            logger.error(f"Display render error: {e}")
            return False

        if text == self.text:
            return False
        self.text = text

        if self.sink is None:
            logger.debug(f"Display: {text}")
            return True
        try:
            result = self.sink(text)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Display sink error: {e}")
        return True
