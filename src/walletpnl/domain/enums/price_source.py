from enum import Enum


class PriceSource(str, Enum):
    """Provenance of a resolved price."""

    COINGECKO = "coingecko"
    BINANCE = "binance"
    JUPITER = "jupiter"
    SWAP = "swap"
    FALLBACK_CURRENT = "fallback_current"  # today's price standing in for a past date
    UNAVAILABLE = "unavailable"

    @property
    def is_authoritative(self) -> bool:
        return self not in (PriceSource.FALLBACK_CURRENT, PriceSource.UNAVAILABLE)
