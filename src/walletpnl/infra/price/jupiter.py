"""Jupiter Price API v3: batch spot prices for SPL mints."""

import logging
from decimal import Decimal, InvalidOperation

from walletpnl.exceptions import ExternalServiceError, RateLimitError
from walletpnl.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

MAX_IDS_PER_REQUEST = 50
PRICE_TIMEOUT = 5.0


class JupiterPriceProvider:
    def __init__(self, http_client: RateLimitedClient, base_url: str = "https://api.jup.ag") -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    async def get_prices(self, mints: list[str]) -> dict[str, Decimal]:
        """Return {mint: usd_price} for the mints Jupiter knows. At most 50 ids per call."""
        if not mints:
            return {}
        if len(mints) > MAX_IDS_PER_REQUEST:
            raise ValueError(f"Jupiter accepts at most {MAX_IDS_PER_REQUEST} ids, got {len(mints)}")

        response = await self._http.get(
            f"{self._base_url}/price/v3/price", params={"ids": ",".join(mints)}, timeout=PRICE_TIMEOUT
        )
        if response.status_code == 429:
            raise RateLimitError(f"Jupiter rate limited ({len(mints)} ids)")
        if response.status_code != 200:
            raise ExternalServiceError(f"Jupiter returned {response.status_code} ({len(mints)} ids)")

        payload = response.json() or {}
        entries = payload.get("data", payload) or {}

        prices: dict[str, Decimal] = {}
        for mint, info in entries.items():
            if not isinstance(info, dict):
                continue
            raw = info.get("price") or info.get("usdPrice")
            if raw is None:
                continue
            try:
                price = Decimal(str(raw))
            except InvalidOperation:
                logger.debug("Unparseable Jupiter price for %s: %r", mint, raw)
                continue
            if price > 0:
                prices[mint] = price
        return prices
