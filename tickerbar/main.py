import asyncio
import signal
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from tickerbar.core.logger import logger
from tickerbar.config import settings
from tickerbar.connectors.okx_rest import OKXRestClient
from tickerbar.connectors.telegram import TelegramNotifier

# Core Components
from tickerbar.core.alerts import PriceAlertEngine
from tickerbar.core.connection import ConnectionManager
from tickerbar.core.display import DisplayRefresher
from tickerbar.core.persistence import StateStore
from tickerbar.core.registry import SubscriptionRegistry
from tickerbar.core.tracker import TickerTracker

def build_tracker() -> TickerTracker:
    """One of each component per process, wired explicitly"""
    registry = SubscriptionRegistry()
    connection = ConnectionManager(registry)
    notifier = TelegramNotifier()
    engine = PriceAlertEngine(settings.alert_config(), notifier=notifier)
    rest = OKXRestClient()

    tracker = TickerTracker(
        registry,
        connection,
        engine,
        validator=rest,
        details=rest,
        store=StateStore(),
        notifier=notifier,
    )
    notifier.set_tracker(tracker)
    return tracker

def log_menu_bar(text: str):
    logger.info(f"[MENU] {text}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"{settings.APP_NAME} Initialized", extra={"version": settings.APP_VERSION})

    tracker = build_tracker()
    app.state.tracker = tracker
    refresher = DisplayRefresher(tracker.menu_bar_text, sink=log_menu_bar)

    await tracker.load()
    await tracker.notifier.start()
    await tracker.connection.start()
    await refresher.start()

    yield

    # Shutdown
    logger.info("Shutdown Initiated...")
    await refresher.stop()
    await tracker.connection.stop()
    await tracker.notifier.stop()
    await tracker.validator.close()
    await tracker.save()
    logger.info(f"{settings.APP_NAME} Shutdown Complete")

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

@app.get("/status")
async def get_status(request: Request):
    tracker: TickerTracker = request.app.state.tracker
    return {
        "connection": tracker.connection.state.value,
        "selected": tracker.registry.selected,
        "menu_bar": tracker.menu_bar_text(),
        "pairs": [pair.model_dump(mode="json") for pair in tracker.registry.pairs()],
    }

async def main():
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Keep the app running
    stop_event = asyncio.Event()

    def handle_signal():
        stop_event.set()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, handle_signal)
    loop.add_signal_handler(signal.SIGTERM, handle_signal)

    # Run application lifecycle
    async with lifespan(app):
        logger.info(f"{settings.APP_NAME} Core Loop Running")
        await stop_event.wait()
        logger.info("Shutdown signal received")

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
