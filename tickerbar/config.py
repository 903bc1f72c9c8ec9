from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from tickerbar.core.models import AlertConfig

ALERT_THRESHOLD_RANGE = (0.1, 10.0)
ALERT_WINDOW_RANGE = (1, 60)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "TickerBar"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # OKX
    OKX_WS_URL: str = Field(default="wss://ws.okx.com:8443/ws/v5/public", description="Public websocket endpoint")
    OKX_REST_URL: str = Field(default="https://www.okx.com", description="REST base URL")
    DEFAULT_QUOTE: str = Field(default="USDT", description="Quote currency appended to bare base tokens")

    # Connection timing (seconds)
    KEEPALIVE_INTERVAL: float = Field(default=25.0, gt=0)
    CONNECT_TIMEOUT: float = Field(default=10.0, gt=0)
    RECONNECT_SETTLE_DELAY: float = Field(default=1.0, ge=0)
    RESUBSCRIBE_DELAY: float = Field(default=2.0, ge=0)

    # Price alerts
    ALERTS_ENABLED: bool = True
    ALERT_THRESHOLD_PERCENT: float = Field(default=1.0, ge=ALERT_THRESHOLD_RANGE[0], le=ALERT_THRESHOLD_RANGE[1], description="Swing in percent")
    ALERT_WINDOW_MINUTES: int = Field(default=5, ge=ALERT_WINDOW_RANGE[0], le=ALERT_WINDOW_RANGE[1])

    # Local state
    STATE_FILE: str = Field(default="data/state.json", description="Tracked symbols and selection")
    DISPLAY_REFRESH_INTERVAL: float = Field(default=0.5, gt=0)

    # Telegram
    TELEGRAM_TOKEN: str = Field(default="", description="Telegram Bot Token")
    TELEGRAM_ALLOWED_IDS: List[int] = Field(default=[], description="List of authorized User IDs")

    @field_validator("TELEGRAM_ALLOWED_IDS", mode="before")
    @classmethod
    def parse_ids(cls, v):
        if isinstance(v, int):
            return [v]
        if isinstance(v, str) and not v.strip().startswith("["):
            # Handle comma-separated string: "123,456"
            return [int(x.strip()) for x in v.split(",") if x.strip()]
        return v

    def alert_config(self) -> AlertConfig:
        return AlertConfig(
            enabled=self.ALERTS_ENABLED,
            threshold_percent=self.ALERT_THRESHOLD_PERCENT,
            window_minutes=self.ALERT_WINDOW_MINUTES,
        )

settings = Settings()
