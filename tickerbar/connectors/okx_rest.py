from typing import Any, Dict, Optional
import httpx
from pydantic import ValidationError
from tickerbar.config import settings
from tickerbar.core.logger import logger
from tickerbar.core.models import TickerDetails

class OKXRestClient:
    """Public (unauthenticated) OKX v5 REST endpoints used outside the streaming loop"""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url or settings.OKX_REST_URL
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.get(endpoint, params=params)

            if response.status_code >= 400:
                logger.error(f"OKX API Error {response.status_code}: {response.text}")

            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP Error: {e}")
            raise
        except Exception:
            logger.exception("Request failed")
            raise

    async def symbol_exists(self, symbol: str) -> bool:
        """True when OKX lists `symbol` as a spot instrument. Any failure counts as False."""
        logger.info(f"Validating {symbol} against OKX instruments", extra={"symbol": symbol})
        try:
            payload = await self._get("/api/v5/public/instruments", {"instType": "SPOT", "instId": symbol})
        except Exception:
            return False

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            logger.error(f"Unexpected instruments payload for {symbol}")
            return False

        logger.info(f"Instrument lookup for {symbol}: {len(rows)} result(s)")
        return len(rows) > 0

    async def fetch_details(self, symbol: str) -> Optional[TickerDetails]:
        """24h high/low/volume/open prices for one symbol, None on failure"""
        try:
            payload = await self._get("/api/v5/market/ticker", {"instId": symbol})
        except Exception:
            return None

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not rows or not isinstance(rows[0], dict):
            logger.warning(f"No ticker details for {symbol}: {payload.get('msg') if isinstance(payload, dict) else payload}")
            return None

        try:
            return TickerDetails.model_validate(rows[0])
        except ValidationError as e:
            logger.error(f"Invalid ticker details for {symbol}: {e}")
            return None

    async def close(self):
        await self.client.aclose()
