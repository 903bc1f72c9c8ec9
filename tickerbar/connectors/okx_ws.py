import asyncio
from typing import AsyncIterator, Optional
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from tickerbar.config import settings
from tickerbar.core.errors import ConnectFailed, SendFailed
from tickerbar.core.logger import logger

PING_FRAME = "ping"

class OKXTransport:
    """
    One physical connection to the OKX public websocket.

    No retries happen here: a failed open raises ConnectFailed, a read error or
    close simply ends receive(). Reconnecting is the ConnectionManager's job.
    """

    def __init__(self, url: Optional[str] = None, keepalive_interval: Optional[float] = None,
                 open_timeout: Optional[float] = None):
        self.url = url or settings.OKX_WS_URL
        self.keepalive_interval = keepalive_interval or settings.KEEPALIVE_INTERVAL
        self.open_timeout = open_timeout or settings.CONNECT_TIMEOUT
        self._ws = None
        self._closed = False
        self._send_lock = asyncio.Lock()  # single writer
        self._keepalive_task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    async def open(self):
        """Open the connection and start the keepalive ping"""
        if self._closed:
            raise ConnectFailed(self.url, "transport already closed")

        logger.info(f"Connecting to {self.url}...")
        try:
            ws = await websockets.connect(self.url, ping_interval=None, open_timeout=self.open_timeout)
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as e:
            raise ConnectFailed(self.url, str(e)) from e

        if self._closed:
            # close() raced the handshake
            await ws.close()
            raise ConnectFailed(self.url, "closed during handshake")

        self._ws = ws
        self._keepalive_task = asyncio.create_task(self._keepalive())
        logger.info("Connected to OKX public WS")

    async def send(self, frame: str):
        if not self.is_open:
            raise SendFailed("transport is not open")
        async with self._send_lock:
            try:
                await self._ws.send(frame)
            except ConnectionClosed as e:
                raise SendFailed(f"connection closed: {e}") from e

    async def receive(self) -> AsyncIterator[str]:
        """Yield text frames until the connection closes or errors"""
        if not self.is_open:
            return
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosed as e:
            if not self._closed:
                logger.warning(f"OKX WS connection lost: {e}")

    async def close(self):
        if self._closed:
            return
        self._closed = True

        task = self._keepalive_task
        if task and task is not asyncio.current_task():
            task.cancel()
        self._keepalive_task = None

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Error while closing OKX WS: {e}")

    async def _keepalive(self):
        """Send "ping" every interval; the server answers "pong"."""
        while self.is_open:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self.send(PING_FRAME)
            except SendFailed as e:
                # The read path detects dead connections; a failed ping only gets logged
                logger.warning(f"Keepalive ping failed: {e}")
