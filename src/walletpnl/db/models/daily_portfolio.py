import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from walletpnl.db.session import Base, TimestampMixin, UUIDPrimaryKey


class DailyPortfolio(UUIDPrimaryKey, TimestampMixin, Base):
    """End-of-day valuation of a wallet. Recomputed on every sync run."""

    __tablename__ = "daily_portfolios"
    __table_args__ = (
        UniqueConstraint("user_id", "wallet_address", "chain", "date", name="uq_daily_portfolios_wallet_date"),
    )

    user_id: Mapped[str] = mapped_column(String(100), index=True)
    wallet_address: Mapped[str] = mapped_column(String(100))
    chain: Mapped[str] = mapped_column(String(20))
    date: Mapped[dt.date] = mapped_column(Date)
    total_value: Mapped[Decimal] = mapped_column(Numeric(30, 12))
    daily_pnl: Mapped[Decimal] = mapped_column(Numeric(30, 12))
    daily_pnl_percent: Mapped[Decimal] = mapped_column(Numeric(30, 8))
    holdings: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
