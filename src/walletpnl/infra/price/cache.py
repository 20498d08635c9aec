"""Process-wide in-memory price caches.

Both caches are created once per process (container singleton) and shared by
every sync. Writes are idempotent: a key always resolves to the same value, so
concurrent syncs racing on a key only cost a redundant upstream fetch. No locks.
"""

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable

from walletpnl.domain.enums import PriceSource


@dataclass(frozen=True)
class PriceQuote:
    """A USD price with its provenance."""

    price: Decimal
    source: PriceSource


class CurrentPriceCache:
    """Spot prices, expiring after `ttl` seconds. Zero prices are cached too."""

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[PriceQuote, float]] = {}

    def get(self, token_address: str) -> PriceQuote | None:
        entry = self._entries.get(token_address)
        if entry is None:
            return None
        quote, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            self._entries.pop(token_address, None)
            return None
        return quote

    def set(self, token_address: str, quote: PriceQuote) -> None:
        self._entries[token_address] = (quote, self._clock())

    def clear(self) -> None:
        self._entries.clear()


class HistoricalPriceCache:
    """Dated prices from authoritative sources. Never expires within a process."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, date], PriceQuote] = {}

    def get(self, token_address: str, day: date) -> PriceQuote | None:
        return self._entries.get((token_address, day))

    def set(self, token_address: str, day: date, quote: PriceQuote) -> None:
        self._entries[(token_address, day)] = quote

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class PriceCaches:
    """Holder for the two caches so they share one lifecycle."""

    def __init__(self, current_ttl: float = 60.0) -> None:
        self.current = CurrentPriceCache(ttl=current_ttl)
        self.historical = HistoricalPriceCache()

    def clear(self) -> None:
        self.current.clear()
        self.historical.clear()
