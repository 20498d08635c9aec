from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from walletpnl.db.models import DailyPortfolio, PortfolioTransaction, TokenPrice, WalletSync
from walletpnl.domain.enums import SyncStatus, TxType

WALLET = "Wa11et1111111111111111111111111111111111111"


class TestWalletSyncModel:
    async def test_defaults(self, session):
        sync = WalletSync(user_id="u1", wallet_address=WALLET, chain="solana", start_date=date(2026, 1, 1))
        session.add(sync)
        await session.commit()
        await session.refresh(sync)

        assert sync.id is not None
        assert sync.status == SyncStatus.PENDING.value
        assert sync.version == 1
        assert sync.updated_at is not None
        assert sync.completed_at is None
        assert sync.error_message is None

    async def test_one_record_per_key(self, session):
        session.add(WalletSync(user_id="u1", wallet_address=WALLET, chain="solana", start_date=date(2026, 1, 1)))
        await session.commit()
        session.add(WalletSync(user_id="u1", wallet_address=WALLET, chain="solana", start_date=date(2026, 1, 1)))
        with pytest.raises(IntegrityError):
            await session.commit()


class TestPortfolioTransactionModel:
    def _row(self, user_id="u1"):
        return PortfolioTransaction(
            user_id=user_id,
            wallet_address=WALLET,
            chain="solana",
            tx_hash="sig1",
            token_address="mint",
            token_symbol="UNKNOWN",
            token_name="Unknown Token",
            type=TxType.TRANSFER_IN.value,
            amount=Decimal("1.5"),
            price_usd=Decimal("2"),
            value_usd=Decimal("3"),
            timestamp=1767355200,
        )

    async def test_write_once_per_tx_and_token(self, session):
        session.add(self._row())
        await session.commit()
        session.add(self._row())
        with pytest.raises(IntegrityError):
            await session.commit()

    async def test_same_tx_for_another_user(self, session):
        session.add_all([self._row("u1"), self._row("u2")])
        await session.commit()


class TestTokenPriceModel:
    async def test_one_price_per_token_day(self, session):
        session.add(TokenPrice(token_address="mint", chain="solana", date=date(2026, 1, 2), price=Decimal("1"), source="coingecko"))
        await session.commit()
        session.add(TokenPrice(token_address="mint", chain="solana", date=date(2026, 1, 2), price=Decimal("2"), source="coingecko"))
        with pytest.raises(IntegrityError):
            await session.commit()


class TestDailyPortfolioModel:
    async def test_holdings_json_roundtrip(self, session):
        holdings = [{"token_address": "mint", "symbol": "SOL", "name": "Solana", "amount": "1", "price": "60", "value": "60"}]
        snapshot = DailyPortfolio(
            user_id="u1",
            wallet_address=WALLET,
            chain="solana",
            date=date(2026, 1, 3),
            total_value=Decimal("60"),
            daily_pnl=Decimal("10"),
            daily_pnl_percent=Decimal("20"),
            holdings=holdings,
        )
        session.add(snapshot)
        await session.commit()
        await session.refresh(snapshot)

        assert snapshot.holdings == holdings
        assert snapshot.total_value == Decimal("60")
