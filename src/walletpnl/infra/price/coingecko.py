"""CoinGecko price provider: daily history and spot prices in USD."""

import logging
from datetime import date
from decimal import Decimal

from walletpnl.domain.tokens import SOL_MINT
from walletpnl.exceptions import RateLimitError
from walletpnl.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

# Mints with a CoinGecko day-granularity history. Everything else has no free history source.
MINT_TO_COINGECKO: dict[str, str] = {
    SOL_MINT: "solana",
}

HISTORY_TIMEOUT = 5.0
SPOT_TIMEOUT = 3.0


def coingecko_id_for(mint: str) -> str | None:
    return MINT_TO_COINGECKO.get(mint)


def _format_history_date(day: date) -> str:
    """CoinGecko /history wants DD-MM-YYYY."""
    return day.strftime("%d-%m-%Y")


class CoinGeckoProvider:
    """Fetch USD prices from the CoinGecko public API.

    Rate limits surface as RateLimitError so callers can apply their own backoff
    policy; a missing price is None.
    """

    def __init__(self, http_client: RateLimitedClient, api_key: str = "", base_url: str = "https://api.coingecko.com") -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def _params(self, **extra: str) -> dict[str, str]:
        params = dict(extra)
        if self._api_key:
            params["x_cg_demo_api_key"] = self._api_key
        return params

    async def get_historical_price(self, coingecko_id: str, day: date) -> Decimal | None:
        """Daily price via /coins/{id}/history. Raises RateLimitError on 429."""
        url = f"{self._base_url}/api/v3/coins/{coingecko_id}/history"
        params = self._params(date=_format_history_date(day), localization="false")

        response = await self._http.get(url, params=params, timeout=HISTORY_TIMEOUT)
        if response.status_code == 429:
            raise RateLimitError(f"CoinGecko history rate limited for {coingecko_id} on {day}")
        if response.status_code != 200:
            logger.warning("CoinGecko history returned %d for %s on %s", response.status_code, coingecko_id, day)
            return None

        data = response.json() or {}
        usd = (data.get("market_data") or {}).get("current_price", {}).get("usd")
        if not usd or usd <= 0:
            return None
        return Decimal(str(usd))

    async def get_current_price(self, coingecko_id: str) -> Decimal | None:
        """Spot price via /simple/price. Raises RateLimitError on 429."""
        url = f"{self._base_url}/api/v3/simple/price"
        params = self._params(ids=coingecko_id, vs_currencies="usd")

        response = await self._http.get(url, params=params, timeout=SPOT_TIMEOUT)
        if response.status_code == 429:
            raise RateLimitError(f"CoinGecko spot rate limited for {coingecko_id}")
        if response.status_code != 200:
            logger.debug("CoinGecko spot returned %d for %s", response.status_code, coingecko_id)
            return None

        usd = (response.json() or {}).get(coingecko_id, {}).get("usd")
        if not usd or usd <= 0:
            return None
        return Decimal(str(usd))
