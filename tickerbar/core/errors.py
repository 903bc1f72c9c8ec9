"""
Exception hierarchy for the ticker feed.

Transport and connection errors are resolved into state transitions by the
ConnectionManager; symbol errors are turned into user-facing messages by the
tracker. None of them is allowed to escape to the top of the process.
"""


class TickerBarError(Exception):
    """Base class for all errors raised by this package."""


class ConnectFailed(TickerBarError):
    """The websocket endpoint could not be opened."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"Connect to {url} failed: {reason}" if reason else f"Connect to {url} failed")


class SendFailed(TickerBarError):
    """A frame was written to a transport that is not open."""


class DecodeFailed(TickerBarError):
    """An inbound frame could not be decoded."""

    def __init__(self, frame: str, reason: str):
        self.frame = frame
        self.reason = reason
        super().__init__(reason)


class SymbolError(TickerBarError):
    """Base class for user-facing symbol errors."""

    def __init__(self, symbol: str, message: str):
        self.symbol = symbol
        self.message = message
        super().__init__(message)


class InvalidSymbol(SymbolError):
    def __init__(self, symbol: str):
        super().__init__(symbol, f"'{symbol}' is not a valid trading pair.")


class AlreadyTracked(SymbolError):
    def __init__(self, symbol: str):
        super().__init__(symbol, f"Pair '{symbol}' is already tracked.")


class SymbolNotFound(SymbolError):
    def __init__(self, symbol: str):
        super().__init__(symbol, f"Pair '{symbol}' does not exist on OKX or is invalid.")
