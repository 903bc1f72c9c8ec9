import asyncio
import inspect
import json
from typing import Callable, List, Optional, Set
from tickerbar.config import settings
from tickerbar.connectors.okx_ws import PING_FRAME, OKXTransport
from tickerbar.core.errors import ConnectFailed, SendFailed
from tickerbar.core.logger import logger
from tickerbar.core.models import ConnectionState, Pong, SubscribeAck, TickerUpdate, VenueError
from tickerbar.core.parser import MarketDataParser

TICKERS_CHANNEL = "tickers"


def subscription_frame(op: str, symbol: str) -> str:
    return json.dumps({"op": op, "args": [{"channel": TICKERS_CHANNEL, "instId": symbol}]})


class ConnectionManager:
    """
    Drives one OKX websocket through disconnected -> connecting -> connected.

    Every connect attempt gets a new generation id. Timers and the receive loop
    capture the generation they were started for and do nothing once it is
    stale, so a superseded connection can never change state.

    On every connect the subscriptions are rebuilt from the registry, never
    from what the previous connection acknowledged.
    """

    def __init__(self, registry, transport_factory: Optional[Callable] = None,
                 parser: Optional[MarketDataParser] = None,
                 connect_timeout: Optional[float] = None,
                 settle_delay: Optional[float] = None,
                 resubscribe_delay: Optional[float] = None):
        self.registry = registry
        self.parser = parser or MarketDataParser()
        self._transport_factory = transport_factory or OKXTransport
        self.connect_timeout = settings.CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        self.settle_delay = settings.RECONNECT_SETTLE_DELAY if settle_delay is None else settle_delay
        self.resubscribe_delay = settings.RESUBSCRIBE_DELAY if resubscribe_delay is None else resubscribe_delay

        self.running = False
        self._stopped = False
        self.generation = 0
        self._state = ConnectionState.DISCONNECTED
        self._transport = None
        self._tasks: Set[asyncio.Task] = set()

        # Per-attempt resubscription bookkeeping
        self._pending: Set[str] = set()
        self._snapshot_taken = False
        self._burst_sent = False
        self._acked = False

        self.listeners: List[Callable] = []
        self.state_listeners: List[Callable] = []
        registry.bind(self)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def add_listener(self, callback):
        """Register a callback for ticker updates"""
        self.listeners.append(callback)

    def add_state_listener(self, callback):
        self.state_listeners.append(callback)

    # --- Lifecycle ---

    async def start(self):
        """Open a connection. No-op while connecting or connected."""
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug(f"start() ignored, connection is {self._state.value}")
            return

        self.running = True
        self._stopped = False
        self.generation += 1
        gen = self.generation
        self._pending = set()
        self._snapshot_taken = False
        self._burst_sent = False
        self._acked = False
        self._set_state(ConnectionState.CONNECTING)

        transport = self._transport_factory()
        self._transport = transport
        self._spawn(self._connect_timeout(gen))

        try:
            await transport.open()
        except ConnectFailed as e:
            logger.warning(f"{e}")
            await self._connection_lost(gen)
            return
        except Exception as e:
            logger.error(f"Unexpected error opening connection: {e}", exc_info=True)
            await self._connection_lost(gen)
            return

        if gen != self.generation:
            # Timed out or torn down while the handshake was in flight
            await transport.close()
            return

        self._spawn(self._receive_loop(gen, transport))
        self._spawn(self._resubscribe(gen))

    async def stop(self):
        if not self.running and self._transport is None:
            return
        logger.info("Stopping OKX connection...")
        self.running = False
        self._stopped = True
        await self._teardown()

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def force_reconnect(self):
        """Drop the current connection and connect again after the settle delay"""
        if self._stopped:
            logger.info("Reconnect ignored, connection was stopped")
            return
        logger.info("Forcing reconnect...")
        self.running = True
        await self._teardown()
        self._schedule_reconnect()

    async def _connection_lost(self, gen: int):
        if gen != self.generation:
            return
        await self._teardown()
        self._schedule_reconnect()

    async def _teardown(self):
        self.generation += 1
        self._set_state(ConnectionState.DISCONNECTED)

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    def _schedule_reconnect(self):
        if not self.running:
            return
        logger.info(f"Reconnecting in {self.settle_delay}s...")
        self._spawn(self._reconnect_after_settle(self.generation))

    async def _reconnect_after_settle(self, gen: int):
        await asyncio.sleep(self.settle_delay)
        if gen != self.generation or not self.running:
            return
        await self.start()

    async def _connect_timeout(self, gen: int):
        await asyncio.sleep(self.connect_timeout)
        if gen != self.generation or self._state is not ConnectionState.CONNECTING:
            return
        logger.warning(f"Connection timeout after {self.connect_timeout}s. Forcing reconnect...")
        await self.force_reconnect()

    # --- Subscriptions ---

    async def subscribe(self, symbol: str):
        await self._request("subscribe", symbol)

    async def unsubscribe(self, symbol: str):
        await self._request("unsubscribe", symbol)

    async def _request(self, op: str, symbol: str):
        frame = subscription_frame(op, symbol)
        if self._state is ConnectionState.CONNECTED:
            await self._send(frame)
        elif self._state is ConnectionState.CONNECTING and self._snapshot_taken:
            # The resubscription burst already read the registry; join it
            if op == "subscribe":
                self._pending.add(symbol)
            else:
                self._pending.discard(symbol)
            await self._send(frame, resubscribe=True)
        else:
            logger.info(f"Not connected, {op} {symbol} deferred until reconnect", extra={"symbol": symbol})

    async def _resubscribe(self, gen: int):
        if self.resubscribe_delay:
            await asyncio.sleep(self.resubscribe_delay)
            if gen != self.generation:
                return

        symbols = self.registry.list()
        self._pending = set(symbols)
        self._snapshot_taken = True

        if symbols:
            logger.info(f"Resubscribing {len(symbols)} channel(s)...")
        for symbol in symbols:
            if gen != self.generation:
                return
            if symbol not in self.registry:
                # Removed while the burst was in flight
                self._pending.discard(symbol)
                continue
            await self._send(subscription_frame("subscribe", symbol), resubscribe=True)

        if gen != self.generation:
            return
        self._burst_sent = True

        if not symbols:
            # Nothing to acknowledge; a keepalive round trip confirms the link
            await self._send(PING_FRAME, resubscribe=True)
        elif self._acked:
            self._set_state(ConnectionState.CONNECTED)

    async def _send(self, frame: str, resubscribe: bool = False) -> bool:
        transport = self._transport
        try:
            if transport is None:
                raise SendFailed("no transport")
            await transport.send(frame)
            logger.debug(f"Sent: {frame}")
            return True
        except SendFailed as e:
            if resubscribe:
                # The read path will notice a dead link; no reconnect from here
                logger.warning(f"Resubscribe send failed: {e}")
                return False
            logger.warning(f"Send failed: {e}. Forcing reconnect...")
            await self.force_reconnect()
            return False

    # --- Inbound ---

    async def _receive_loop(self, gen: int, transport):
        try:
            async for frame in transport.receive():
                if gen != self.generation:
                    return
                await self._handle_frame(frame)
        except Exception as e:
            logger.error(f"Error in read loop: {e}", exc_info=True)

        if gen == self.generation:
            logger.warning("OKX WS stream ended. Reconnecting...")
            await self._connection_lost(gen)

    async def _handle_frame(self, frame: str):
        event = self.parser.parse(frame)

        if isinstance(event, TickerUpdate):
            await self._dispatch(event)
        elif isinstance(event, SubscribeAck):
            self._on_ack(event)
        elif isinstance(event, Pong):
            self._on_pong()
        elif isinstance(event, VenueError):
            logger.error(f"OKX error {event.code}: {event.message}")

    def _on_ack(self, ack: SubscribeAck):
        logger.info(f"Subscribed to {ack.channel} for {ack.symbol}", extra={"symbol": ack.symbol})
        self._pending.discard(ack.symbol)
        self._acked = True
        if self._burst_sent and self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CONNECTED)

    def _on_pong(self):
        logger.debug("pong received")
        if self._burst_sent and not self._pending and self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CONNECTED)

    async def _dispatch(self, update: TickerUpdate):
        for listener in self.listeners:
            try:
                result = listener(update)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener error: {e}", exc_info=True)

    # --- Helpers ---

    def _set_state(self, new_state: ConnectionState):
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.info(
            f"Connection state: {old_state.value} -> {new_state.value}",
            extra={"state": new_state.value, "generation": self.generation},
        )
        for callback in self.state_listeners:
            try:
                callback(new_state)
            except Exception as e:
                logger.error(f"State listener error: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
