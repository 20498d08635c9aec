"""Tests for SolanaTxLoader: paging, stop conditions and ledger storage."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.repos.portfolio_transaction_repo import PortfolioTransactionRepo
from walletpnl.domain.enums import PriceSource, TxType
from walletpnl.domain.tokens import SOL_MINT, USDC_MINT
from walletpnl.exceptions import ExternalServiceError, RateLimitError, SyncSuperseded, TransactionFetchError
from walletpnl.infra.blockchain.solana.helius_client import HeliusClient
from walletpnl.infra.blockchain.solana.tx_loader import SolanaTxLoader
from walletpnl.infra.price.cache import PriceQuote
from walletpnl.infra.price.service import PriceService

WALLET = "Wa11et1111111111111111111111111111111111111"
OTHER = "0ther11111111111111111111111111111111111111"
START = datetime(2026, 1, 1, tzinfo=UTC)
JAN_2 = int(datetime(2026, 1, 2, 12, tzinfo=UTC).timestamp())
JAN_3 = int(datetime(2026, 1, 3, 12, tzinfo=UTC).timestamp())
DEC_31 = int(datetime(2025, 12, 31, 12, tzinfo=UTC).timestamp())


def _raw(sig: str, ts: int, tx_type: str = "TRANSFER", token_transfers=None, native_transfers=None) -> dict:
    return {
        "signature": sig,
        "timestamp": ts,
        "type": tx_type,
        "tokenTransfers": token_transfers or [],
        "nativeTransfers": native_transfers or [],
    }


def _loader(session, client, prices=None) -> tuple[SolanaTxLoader, AsyncMock]:
    sleep = AsyncMock()
    if prices is None:
        prices = AsyncMock(spec=PriceService)
    return SolanaTxLoader(session, client, prices, page_size=2, sleep=sleep), sleep


@pytest.fixture()
def helius():
    return AsyncMock(spec=HeliusClient)


class TestFetchAll:
    async def test_pages_until_start_date(self, session, helius):
        helius.get_transactions.side_effect = [
            [_raw("s4", JAN_3), _raw("s3", JAN_3 - 60)],
            [_raw("s2", JAN_2), _raw("s1", DEC_31)],
            [_raw("s0", DEC_31 - 60)],
        ]
        loader, sleep = _loader(session, helius)

        txs = await loader.fetch_all(WALLET, START)

        assert [t.signature for t in txs] == ["s4", "s3", "s2"]
        assert helius.get_transactions.call_count == 2
        assert helius.get_transactions.call_args_list[0].kwargs["before"] is None
        assert helius.get_transactions.call_args_list[1].kwargs["before"] == "s3"
        assert [c.args[0] for c in sleep.call_args_list] == [0.2]

    async def test_empty_page_ends(self, session, helius):
        helius.get_transactions.side_effect = [[_raw("s2", JAN_2), _raw("s1", JAN_2 - 1)], []]
        loader, _ = _loader(session, helius)

        txs = await loader.fetch_all(WALLET, START)

        assert len(txs) == 2
        assert helius.get_transactions.call_count == 2

    async def test_no_history(self, session, helius):
        helius.get_transactions.return_value = []
        loader, sleep = _loader(session, helius)

        assert await loader.fetch_all(WALLET, START) == []
        sleep.assert_not_called()

    async def test_malformed_item_skipped(self, session, helius):
        helius.get_transactions.side_effect = [
            [_raw("s2", JAN_2), {"signature": "broken"}],
            [],
        ]
        loader, _ = _loader(session, helius)

        txs = await loader.fetch_all(WALLET, START)

        assert [t.signature for t in txs] == ["s2"]
        # cursor still advances past the broken item
        assert helius.get_transactions.call_args_list[1].kwargs["before"] == "broken"

    async def test_unsigned_last_item_falls_back_to_previous_signature(self, session, helius):
        helius.get_transactions.side_effect = [
            [_raw("s3", JAN_3), _raw("s2", JAN_2), {"timestamp": JAN_2 - 60}],
            [_raw("s1", JAN_2 - 120)],
            [],
        ]
        loader, _ = _loader(session, helius)

        txs = await loader.fetch_all(WALLET, START)

        assert [t.signature for t in txs] == ["s3", "s2", "s1"]
        assert helius.get_transactions.call_args_list[1].kwargs["before"] == "s2"

    async def test_page_without_any_signature_stops_with_warning(self, session, helius, caplog):
        helius.get_transactions.side_effect = [[{"timestamp": JAN_2}, {"timestamp": JAN_2 - 1}]]
        loader, _ = _loader(session, helius)

        assert await loader.fetch_all(WALLET, START) == []
        assert helius.get_transactions.call_count == 1
        assert "cannot page further" in caplog.text

    async def test_heartbeat_called_per_page(self, session, helius):
        helius.get_transactions.side_effect = [[_raw("s2", JAN_2), _raw("s1", JAN_2 - 1)], []]
        heartbeat = AsyncMock(return_value=True)
        loader, _ = _loader(session, helius)

        await loader.fetch_all(WALLET, START, heartbeat=heartbeat)

        assert heartbeat.await_count == 2

    async def test_stops_before_next_page_when_superseded(self, session, helius):
        helius.get_transactions.side_effect = [[_raw("s2", JAN_2), _raw("s1", JAN_2 - 1)], []]
        heartbeat = AsyncMock(side_effect=[True, False])
        loader, _ = _loader(session, helius)

        with pytest.raises(SyncSuperseded):
            await loader.fetch_all(WALLET, START, heartbeat=heartbeat)

        assert helius.get_transactions.call_count == 1

    async def test_rate_limit_retried(self, session, helius):
        helius.get_transactions.side_effect = [RateLimitError("429"), []]
        loader, sleep = _loader(session, helius)

        assert await loader.fetch_all(WALLET, START) == []
        assert [c.args[0] for c in sleep.call_args_list] == [1]

    async def test_upstream_error_raises_fetch_error(self, session, helius):
        helius.get_transactions.side_effect = ExternalServiceError("Helius returned 500")
        loader, _ = _loader(session, helius)

        with pytest.raises(TransactionFetchError, match="Failed to fetch transactions"):
            await loader.fetch_all(WALLET, START)


class TestLoadWallet:
    @pytest.fixture()
    def sync(self):
        return WalletSync(user_id="u1", wallet_address=WALLET, chain="solana", start_date=date(2026, 1, 1))

    @pytest.fixture()
    def prices(self):
        prices = AsyncMock(spec=PriceService)
        prices.historical_price.return_value = PriceQuote(price=Decimal("150"), source=PriceSource.COINGECKO)
        return prices

    def _history(self):
        return [
            _raw(
                "swap1", JAN_3, tx_type="SWAP",
                token_transfers=[{"mint": USDC_MINT, "tokenAmount": 100, "fromUserAccount": OTHER, "toUserAccount": WALLET}],
                native_transfers=[{"amount": 1_000_000_000, "fromUserAccount": WALLET, "toUserAccount": OTHER}],
            ),
            _raw("in1", JAN_2, native_transfers=[{"amount": 2_000_000_000, "fromUserAccount": OTHER, "toUserAccount": WALLET}]),
        ]

    async def test_stores_rows_with_swap_and_dated_prices(self, session, helius, sync, prices):
        helius.get_transactions.side_effect = [self._history(), []]
        loader, _ = _loader(session, helius, prices)

        result = await loader.load_wallet(sync)

        assert (result.fetched, result.stored, result.cursor) == (2, 3, "swap1")
        rows = await PortfolioTransactionRepo(session).list_for_wallet("u1", WALLET, "solana")
        by_key = {(r.tx_hash, r.token_address): r for r in rows}

        deposit = by_key[("in1", SOL_MINT)]
        assert deposit.type == TxType.TRANSFER_IN.value
        assert deposit.price_usd == Decimal("150")
        assert deposit.value_usd == Decimal("300")
        assert deposit.price_source == PriceSource.COINGECKO.value

        sold = by_key[("swap1", SOL_MINT)]
        assert sold.type == TxType.SELL.value
        assert sold.amount == Decimal("-1")
        assert sold.price_usd == Decimal("100")
        assert sold.value_usd == Decimal("100")
        assert sold.price_source == PriceSource.SWAP.value

        bought = by_key[("swap1", USDC_MINT)]
        assert bought.type == TxType.BUY.value
        assert bought.price_usd == Decimal("1")

        # Only the deposit needed a dated lookup
        prices.historical_price.assert_called_once_with(SOL_MINT, JAN_2)

    async def test_reload_is_idempotent(self, session, helius, sync, prices):
        helius.get_transactions.side_effect = [self._history(), [], self._history(), []]
        loader, _ = _loader(session, helius, prices)

        await loader.load_wallet(sync)
        second = await loader.load_wallet(sync)

        assert second.stored == 0
        rows = await PortfolioTransactionRepo(session).list_for_wallet("u1", WALLET, "solana")
        assert len(rows) == 3

    async def test_bad_transaction_does_not_abort_run(self, session, helius, sync, prices):
        prices.historical_price.side_effect = [RuntimeError("db hiccup"), PriceQuote(Decimal("150"), PriceSource.COINGECKO)]
        helius.get_transactions.side_effect = [
            [
                _raw("in2", JAN_3, native_transfers=[{"amount": 1_000_000_000, "fromUserAccount": OTHER, "toUserAccount": WALLET}]),
                _raw("in1", JAN_2, native_transfers=[{"amount": 1_000_000_000, "fromUserAccount": OTHER, "toUserAccount": WALLET}]),
            ],
            [],
        ]
        loader, _ = _loader(session, helius, prices)

        result = await loader.load_wallet(sync)

        assert result.stored == 1
        rows = await PortfolioTransactionRepo(session).list_for_wallet("u1", WALLET, "solana")
        assert [r.tx_hash for r in rows] == ["in1"]
