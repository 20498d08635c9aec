from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.daily_portfolio import DailyPortfolio


class DailyPortfolioRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, wallet_address: str, chain: str, day: date) -> DailyPortfolio | None:
        result = await self._session.execute(
            select(DailyPortfolio).where(
                DailyPortfolio.user_id == user_id,
                DailyPortfolio.wallet_address == wallet_address,
                DailyPortfolio.chain == chain,
                DailyPortfolio.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: str,
        wallet_address: str,
        chain: str,
        day: date,
        total_value: Decimal,
        daily_pnl: Decimal,
        daily_pnl_percent: Decimal,
        holdings: list[dict[str, Any]],
    ) -> DailyPortfolio:
        snapshot = await self.get(user_id, wallet_address, chain, day)
        if snapshot is None:
            snapshot = DailyPortfolio(user_id=user_id, wallet_address=wallet_address, chain=chain, date=day)
            self._session.add(snapshot)

        snapshot.total_value = total_value
        snapshot.daily_pnl = daily_pnl
        snapshot.daily_pnl_percent = daily_pnl_percent
        snapshot.holdings = holdings
        await self._session.flush()
        return snapshot

    async def delete_for_wallet(self, user_id: str, wallet_address: str, chain: str) -> int:
        result = await self._session.execute(
            delete(DailyPortfolio).where(
                DailyPortfolio.user_id == user_id,
                DailyPortfolio.wallet_address == wallet_address,
                DailyPortfolio.chain == chain,
            )
        )
        return result.rowcount

    async def list_range(
        self, user_id: str, wallet_address: str, chain: str, start: date, end: date
    ) -> list[DailyPortfolio]:
        result = await self._session.execute(
            select(DailyPortfolio)
            .where(
                DailyPortfolio.user_id == user_id,
                DailyPortfolio.wallet_address == wallet_address,
                DailyPortfolio.chain == chain,
                DailyPortfolio.date >= start,
                DailyPortfolio.date <= end,
            )
            .order_by(DailyPortfolio.date.asc())
        )
        return list(result.scalars().all())
