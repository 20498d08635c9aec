import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.token_price import TokenPrice

logger = logging.getLogger(__name__)


class TokenPriceRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, token_address: str, chain: str, day: date) -> Optional[TokenPrice]:
        result = await self._session.execute(
            select(TokenPrice).where(
                TokenPrice.token_address == token_address,
                TokenPrice.chain == chain,
                TokenPrice.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def create_if_absent(
        self, token_address: str, chain: str, day: date, price: Decimal, source: str
    ) -> bool:
        try:
            async with self._session.begin_nested():
                self._session.add(
                    TokenPrice(token_address=token_address, chain=chain, date=day, price=price, source=source)
                )
        except IntegrityError:
            # Duplicate key: another sync stored this date first
            logger.debug("Price for %s on %s already stored", token_address, day)
            return False
        return True
