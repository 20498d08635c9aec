"""Solana Transaction Loader: pages Helius history back to the sync start date and stores ledger rows."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.portfolio_transaction import PortfolioTransaction
from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.repos.portfolio_transaction_repo import PortfolioTransactionRepo
from walletpnl.domain.enums import PriceSource
from walletpnl.exceptions import ExternalServiceError, MalformedRecordError, TransactionFetchError
from walletpnl.infra.blockchain.solana.helius_client import HeliusClient
from walletpnl.infra.http.backoff import SleepFn, call_with_backoff
from walletpnl.infra.price.service import PriceService
from walletpnl.parser.solana_transfers import extract_wallet_transfers
from walletpnl.parser.swap_prices import DEFAULT_DUST_THRESHOLD, extract_swap_prices
from walletpnl.parser.types import LedgerTx
from walletpnl.sync.heartbeat import Heartbeat, beat_or_stop

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    fetched: int
    stored: int
    cursor: str | None  # newest signature seen


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def parse_ledger_tx(raw: dict) -> LedgerTx:
    try:
        return LedgerTx.model_validate(raw)
    except ValidationError as e:
        signature = raw.get("signature") if isinstance(raw, dict) else None
        raise MalformedRecordError(signature, str(e)) from e


class SolanaTxLoader:
    """Loads a wallet's parsed history via Helius, newest-first with a `before` cursor."""

    def __init__(
        self,
        session: AsyncSession,
        client: HeliusClient,
        prices: PriceService,
        page_size: int = 100,
        page_delay: float = 0.2,
        dust_threshold: Decimal = DEFAULT_DUST_THRESHOLD,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._repo = PortfolioTransactionRepo(session)
        self._client = client
        self._prices = prices
        self._page_size = page_size
        self._page_delay = page_delay
        self._dust_threshold = Decimal(str(dust_threshold))
        self._sleep = sleep

    async def load_wallet(self, sync: WalletSync, heartbeat: Heartbeat | None = None) -> LoadResult:
        """Fetch everything since sync.start_date and store new ledger rows.

        `heartbeat` is called once per page and once per transaction; the load
        stops with SyncSuperseded when it reports the run lost its record.
        """
        txs = await self.fetch_all(sync.wallet_address, _start_of_day(sync.start_date), heartbeat=heartbeat)
        logger.info("Fetched %d transactions for %s", len(txs), sync.wallet_address)

        stored = 0
        for tx in txs:
            await beat_or_stop(heartbeat)
            try:
                stored += await self._save_transaction(sync, tx)
            except Exception:
                logger.exception("Failed to parse TX %s", tx.signature)

        logger.info("Stored %d new ledger rows for %s", stored, sync.wallet_address)
        return LoadResult(fetched=len(txs), stored=stored, cursor=txs[0].signature if txs else None)

    async def fetch_all(
        self, wallet_address: str, start_date: datetime, heartbeat: Heartbeat | None = None
    ) -> list[LedgerTx]:
        """All transactions at or after `start_date`, newest first.

        Stops at an empty page or at the first page reaching past `start_date`;
        older history is out of range so it is never requested.
        """
        start_ts = int(start_date.timestamp())
        collected: list[LedgerTx] = []
        before: str | None = None

        while True:
            await beat_or_stop(heartbeat)
            try:
                page = await call_with_backoff(
                    lambda before=before: self._client.get_transactions(
                        wallet_address, before=before, limit=self._page_size
                    ),
                    sleep=self._sleep,
                )
            except (ExternalServiceError, httpx.HTTPError, ValueError) as e:
                logger.error("Error fetching transactions from Helius for %s: %s", wallet_address, e)
                raise TransactionFetchError(f"Failed to fetch transactions from Helius: {e}") from e

            if not page:
                break

            reached_start = False
            for raw in page:
                try:
                    tx = parse_ledger_tx(raw)
                except MalformedRecordError as e:
                    logger.warning("%s", e)
                    continue
                if tx.timestamp >= start_ts:
                    collected.append(tx)
                else:
                    reached_start = True

            if reached_start:
                break

            # Cursor is the oldest item on the page that carries a signature
            before = next(
                (raw["signature"] for raw in reversed(page) if isinstance(raw, dict) and raw.get("signature")),
                None,
            )
            if not before:
                logger.warning(
                    "No signature on a %d-item page for %s, cannot page further; older history skipped",
                    len(page), wallet_address,
                )
                break

            # Helius pacing, independent of retry backoff
            await self._sleep(self._page_delay)

        return collected

    async def _save_transaction(self, sync: WalletSync, tx: LedgerTx) -> int:
        """Store one row per wallet movement. Returns rows inserted."""
        swap_prices = extract_swap_prices(tx, sync.wallet_address, self._dust_threshold)
        inserted = 0

        for transfer in extract_wallet_transfers(tx, sync.wallet_address, self._dust_threshold):
            if await self._repo.exists(sync.user_id, sync.wallet_address, sync.chain, tx.signature, transfer.token_address):
                continue

            # Swap-implied price first, then the dated price chain
            price = swap_prices.get(transfer.token_address)
            source = PriceSource.SWAP
            if not price:
                quote = await self._prices.historical_price(transfer.token_address, tx.timestamp)
                price, source = quote.price, quote.source

            row = PortfolioTransaction(
                user_id=sync.user_id,
                wallet_address=sync.wallet_address,
                chain=sync.chain,
                tx_hash=tx.signature,
                token_address=transfer.token_address,
                token_symbol=transfer.symbol,
                token_name=transfer.name,
                type=transfer.tx_type.value,
                amount=transfer.amount,
                price_usd=price,
                price_source=source.value,
                value_usd=abs(transfer.amount) * price,
                timestamp=tx.timestamp,
            )
            if await self._repo.insert_if_absent(row):
                inserted += 1

        return inserted
