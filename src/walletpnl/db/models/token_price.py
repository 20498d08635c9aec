"""Persisted historical token prices."""

import datetime as dt
from decimal import Decimal

from sqlalchemy import Date, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from walletpnl.db.session import Base, TimestampMixin


class TokenPrice(TimestampMixin, Base):
    """Daily USD price for a token. Keyed by (token_address, chain, date); append-only.

    Only authoritative sources are stored, never a current price standing in for a past date.
    """

    __tablename__ = "token_prices"
    __table_args__ = (
        UniqueConstraint("token_address", "chain", "date", name="uq_token_prices_token_chain_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_address: Mapped[str] = mapped_column(String(100), index=True)
    chain: Mapped[str] = mapped_column(String(20))
    date: Mapped[dt.date] = mapped_column(Date)
    price: Mapped[Decimal] = mapped_column(Numeric(30, 12))
    source: Mapped[str] = mapped_column(String(50))
