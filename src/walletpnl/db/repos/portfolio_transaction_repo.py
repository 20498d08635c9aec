from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.portfolio_transaction import PortfolioTransaction


class PortfolioTransactionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, user_id: str, wallet_address: str, chain: str, tx_hash: str, token_address: str) -> bool:
        result = await self._session.execute(
            select(PortfolioTransaction.id).where(
                PortfolioTransaction.user_id == user_id,
                PortfolioTransaction.wallet_address == wallet_address,
                PortfolioTransaction.chain == chain,
                PortfolioTransaction.tx_hash == tx_hash,
                PortfolioTransaction.token_address == token_address,
            )
        )
        return result.first() is not None

    async def insert_if_absent(self, row: PortfolioTransaction) -> bool:
        """Write-once insert. Returns False if the (key, tx_hash, token) row already exists."""
        if await self.exists(row.user_id, row.wallet_address, row.chain, row.tx_hash, row.token_address):
            return False
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            # Concurrent writer stored it first; savepoint rolls back only this row
            return False
        return True

    async def list_for_wallet(self, user_id: str, wallet_address: str, chain: str) -> list[PortfolioTransaction]:
        result = await self._session.execute(
            select(PortfolioTransaction)
            .where(
                PortfolioTransaction.user_id == user_id,
                PortfolioTransaction.wallet_address == wallet_address,
                PortfolioTransaction.chain == chain,
            )
            .order_by(PortfolioTransaction.timestamp.asc(), PortfolioTransaction.id.asc())
        )
        return list(result.scalars().all())
