"""PriceService: resolves token prices through memory cache, DB and upstream APIs."""

import asyncio
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.repos.token_price_repo import TokenPriceRepo
from walletpnl.domain.enums import Chain, PriceSource
from walletpnl.domain.tokens import SOL_MINT
from walletpnl.exceptions import ExternalServiceError, UpstreamUnavailableError
from walletpnl.infra.http.backoff import SleepFn, call_with_backoff
from walletpnl.infra.price.binance import BinanceTickerProvider
from walletpnl.infra.price.cache import PriceCaches, PriceQuote
from walletpnl.infra.price.coingecko import CoinGeckoProvider, coingecko_id_for
from walletpnl.infra.price.jupiter import MAX_IDS_PER_REQUEST, JupiterPriceProvider

logger = logging.getLogger(__name__)

# Failures of a single upstream source; the caller moves on to the next tier
SOURCE_ERRORS = (ExternalServiceError, httpx.HTTPError, ValueError)

ZERO = Decimal(0)


def utc_day(timestamp: int) -> date:
    """Calendar date (UTC) of a Unix timestamp."""
    return datetime.fromtimestamp(timestamp, UTC).date()


class PriceService:
    """Price orchestrator.

    historical_price: memory cache → DB → CoinGecko history (SOL only) → current price fallback.
    current_price: TTL cache → CoinGecko/Binance (SOL) or Jupiter (other mints).
    Only CoinGecko history results are written to the DB; the fallback is never stored.
    """

    def __init__(
        self,
        session: AsyncSession,
        caches: PriceCaches,
        coingecko: CoinGeckoProvider | None = None,
        binance: BinanceTickerProvider | None = None,
        jupiter: JupiterPriceProvider | None = None,
        chain: str = Chain.SOLANA.value,
        history_pacing_delay: float = 3.0,
        batch_size: int = MAX_IDS_PER_REQUEST,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._repo = TokenPriceRepo(session)
        self._caches = caches
        self._coingecko = coingecko
        self._binance = binance
        self._jupiter = jupiter
        self._chain = chain
        self._history_pacing_delay = history_pacing_delay
        self._batch_size = min(batch_size, MAX_IDS_PER_REQUEST)
        self._sleep = sleep

    async def historical_price(self, token_address: str, timestamp: int) -> PriceQuote:
        """USD price of a token on the UTC date of `timestamp`."""
        day = utc_day(timestamp)

        # 1. In-memory cache
        cached = self._caches.historical.get(token_address, day)
        if cached is not None:
            return cached

        # 2. Stored price
        stored = await self._repo.get(token_address, self._chain, day)
        if stored is not None:
            logger.debug("Using stored price for %s on %s (%s)", token_address, day, stored.source)
            quote = PriceQuote(price=stored.price, source=PriceSource(stored.source))
            self._caches.historical.set(token_address, day, quote)
            return quote

        # 3. Dated upstream source
        price = await self._fetch_history(token_address, day)
        if price is not None:
            quote = PriceQuote(price=price, source=PriceSource.COINGECKO)
            await self._repo.create_if_absent(token_address, self._chain, day, price, quote.source.value)
            self._caches.historical.set(token_address, day, quote)
            logger.info("Stored historical price for %s on %s: %s", token_address, day, price)
            return quote

        # 4. Today's price standing in for the date. Not stored, not cached as historical.
        current = await self.current_price(token_address)
        logger.warning("Using current price as fallback for %s on %s: %s", token_address, day, current.price)
        return PriceQuote(price=current.price, source=PriceSource.FALLBACK_CURRENT)

    async def _fetch_history(self, token_address: str, day: date) -> Decimal | None:
        coingecko_id = coingecko_id_for(token_address)
        if coingecko_id is None or self._coingecko is None:
            return None

        # CoinGecko's free tier allows only a handful of history calls per minute
        await self._sleep(self._history_pacing_delay)
        try:
            return await call_with_backoff(
                lambda: self._coingecko.get_historical_price(coingecko_id, day),
                max_attempts=3,
                initial_delay=2.0,
                sleep=self._sleep,
            )
        except SOURCE_ERRORS as e:
            logger.warning("CoinGecko history unavailable for %s on %s: %s", coingecko_id, day, e)
            return None

    async def current_price(self, token_address: str) -> PriceQuote:
        """Spot USD price. A zero result is cached too so a dead source is not hammered."""
        cached = self._caches.current.get(token_address)
        if cached is not None:
            return cached

        try:
            quote = await self._fetch_current(token_address)
        except UpstreamUnavailableError as e:
            logger.warning("%s", e)
            quote = PriceQuote(price=ZERO, source=PriceSource.UNAVAILABLE)

        self._caches.current.set(token_address, quote)
        return quote

    async def _fetch_current(self, token_address: str) -> PriceQuote:
        if token_address == SOL_MINT:
            if self._coingecko is not None:
                price = await self._try_source("CoinGecko", token_address, lambda: self._coingecko.get_current_price("solana"))
                if price:
                    return PriceQuote(price=price, source=PriceSource.COINGECKO)
            if self._binance is not None:
                price = await self._try_source("Binance", token_address, lambda: self._binance.get_ticker_price("SOLUSDT"))
                if price:
                    return PriceQuote(price=price, source=PriceSource.BINANCE)
        elif self._jupiter is not None:
            prices = await self._try_source(
                "Jupiter",
                token_address,
                lambda: call_with_backoff(lambda: self._jupiter.get_prices([token_address]), sleep=self._sleep),
            )
            if prices and prices.get(token_address):
                return PriceQuote(price=prices[token_address], source=PriceSource.JUPITER)

        raise UpstreamUnavailableError(f"All price sources failed for {token_address}")

    async def _try_source(self, name: str, token_address: str, fetch: Callable[[], Awaitable]):
        try:
            return await fetch()
        except SOURCE_ERRORS as e:
            logger.debug("%s price failed for %s: %s", name, token_address, e)
            return None

    async def batch_current_prices(self, token_addresses: list[str]) -> dict[str, PriceQuote]:
        """Spot prices for many tokens: SOL individually, the rest in Jupiter chunks.

        A failing chunk is logged and skipped; mints missing from the result had no price.
        """
        result: dict[str, PriceQuote] = {}
        unique = list(dict.fromkeys(token_addresses))

        if SOL_MINT in unique:
            result[SOL_MINT] = await self.current_price(SOL_MINT)

        others = [addr for addr in unique if addr != SOL_MINT]
        if not others or self._jupiter is None:
            return result

        for i in range(0, len(others), self._batch_size):
            chunk = others[i : i + self._batch_size]
            try:
                prices = await call_with_backoff(
                    lambda chunk=chunk: self._jupiter.get_prices(chunk), sleep=self._sleep
                )
            except SOURCE_ERRORS as e:
                logger.warning("Jupiter batch price API failed (%d ids): %s", len(chunk), e)
                continue

            for mint, price in prices.items():
                quote = PriceQuote(price=price, source=PriceSource.JUPITER)
                result[mint] = quote
                self._caches.current.set(mint, quote)

        return result
