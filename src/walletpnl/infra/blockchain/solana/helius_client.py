"""Helius enhanced-transactions client: parsed wallet history, newest first."""

import logging

from walletpnl.exceptions import ExternalServiceError, RateLimitError
from walletpnl.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)


class HeliusClient:
    """Minimal client for /v0/addresses/{address}/transactions."""

    def __init__(
        self,
        http_client: RateLimitedClient,
        api_key: str = "",
        base_url: str = "https://api.helius.xyz/v0",
        timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def get_transactions(self, address: str, before: str | None = None, limit: int = 100) -> list[dict]:
        """Fetch one page of parsed transactions.

        Returns raw dicts ordered newest-first; an empty list marks the end of history.
        Uses `before` (a signature) as the pagination cursor.
        """
        params: dict = {"api-key": self._api_key, "limit": limit}
        if before is not None:
            params["before"] = before

        url = f"{self._base_url}/addresses/{address}/transactions"
        response = await self._http.get(url, params=params, timeout=self._timeout)

        if response.status_code == 429:
            raise RateLimitError(f"Helius rate limited for {address}")
        if response.status_code != 200:
            raise ExternalServiceError(f"Helius returned {response.status_code} for {address}")

        data = response.json()
        if not data:
            return []
        if not isinstance(data, list):
            raise ExternalServiceError(f"Unexpected Helius payload for {address}: {type(data).__name__}")
        return data
