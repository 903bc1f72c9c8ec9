from enum import Enum
from decimal import Decimal, InvalidOperation
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def lenient_decimal(v):
    """Optional venue numbers: empty strings and garbage become None."""
    if v is None or isinstance(v, Decimal):
        return v
    try:
        value = Decimal(str(v).strip())
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TickerDetails(BaseModel):
    """Extended 24h market stats (shared by the websocket push and REST ticker)"""
    model_config = ConfigDict(populate_by_name=True)

    high_24h: Optional[Decimal] = Field(default=None, alias="high24h")
    low_24h: Optional[Decimal] = Field(default=None, alias="low24h")
    vol_24h: Optional[Decimal] = Field(default=None, alias="vol24h")
    vol_ccy_24h: Optional[Decimal] = Field(default=None, alias="volCcy24h")
    sod_utc0: Optional[Decimal] = Field(default=None, alias="sodUtc0")
    sod_utc8: Optional[Decimal] = Field(default=None, alias="sodUtc8")
    index_price: Optional[Decimal] = Field(default=None, alias="idxPx")

    @field_validator("*", mode="before")
    @classmethod
    def parse_numbers(cls, v):
        return lenient_decimal(v)

    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


# --- Inbound events ---

class TickerUpdate(BaseModel):
    symbol: str
    last: Decimal = Field(gt=0)
    open_24h: Optional[Decimal] = None
    details: Optional[TickerDetails] = None
    received_at: datetime = Field(default_factory=utcnow)

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.upper()

    @field_validator("open_24h", mode="before")
    @classmethod
    def parse_open(cls, v):
        return lenient_decimal(v)

    @property
    def change_24h(self) -> Optional[Decimal]:
        """(last - open24h) / open24h * 100, unset when open24h is missing or zero"""
        if self.open_24h is None or self.open_24h == 0:
            return None
        return (self.last - self.open_24h) / self.open_24h * 100


class SubscribeAck(BaseModel):
    symbol: str
    channel: str = "tickers"


class VenueError(BaseModel):
    code: str = ""
    message: str = ""


class Pong(BaseModel):
    pass


class Unrecognized(BaseModel):
    raw: str
    reason: str = ""


# --- Tracking state ---

class TrackedPair(BaseModel):
    """A symbol the user streams. Owned by the SubscriptionRegistry."""
    symbol: str
    last_price: Optional[str] = None
    change_24h: Optional[Decimal] = None
    details: Optional[TickerDetails] = None
    updated_at: Optional[datetime] = None


class PriceSample(BaseModel):
    timestamp: datetime
    price: Decimal


class PriceHistory(BaseModel):
    """Chronological samples for one symbol; only pruned from the front."""
    symbol: str
    samples: List[PriceSample] = Field(default_factory=list)
    last_alert_at: Optional[datetime] = None


class AlertConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    threshold_percent: Decimal = Field(default=Decimal("1.0"), gt=0)
    window_minutes: int = Field(default=5, gt=0)

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)


class PriceAlert(BaseModel):
    symbol: str
    direction: Literal["up", "down"]
    pct: Decimal
    current_price: Decimal
    window_minutes: int
    at: datetime

    @property
    def title(self) -> str:
        return "Price Alert"

    @property
    def body(self) -> str:
        return (
            f"{self.symbol} moved {self.direction} {abs(self.pct):.2f}% "
            f"in the last {self.window_minutes} minutes. Current price: ${self.current_price}"
        )


class AddResult(BaseModel):
    success: bool
    message: str = ""
