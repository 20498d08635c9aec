"""Binance public ticker: secondary spot source for SOL."""

import logging
from decimal import Decimal, InvalidOperation

from walletpnl.exceptions import RateLimitError
from walletpnl.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

TICKER_TIMEOUT = 3.0


class BinanceTickerProvider:
    def __init__(self, http_client: RateLimitedClient, base_url: str = "https://api.binance.com") -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    async def get_ticker_price(self, symbol: str) -> Decimal | None:
        """Last trade price for a pair such as SOLUSDT."""
        response = await self._http.get(
            f"{self._base_url}/api/v3/ticker/price", params={"symbol": symbol}, timeout=TICKER_TIMEOUT
        )
        if response.status_code == 429:
            raise RateLimitError(f"Binance rate limited for {symbol}")
        if response.status_code != 200:
            logger.debug("Binance returned %d for %s", response.status_code, symbol)
            return None

        try:
            price = Decimal(str((response.json() or {}).get("price", "0")))
        except InvalidOperation:
            return None
        return price if price > 0 else None
