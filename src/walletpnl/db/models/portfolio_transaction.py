from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import BigInteger, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from walletpnl.db.session import Base, TimestampMixin


class PortfolioTransaction(TimestampMixin, Base):
    """One token movement in or out of a tracked wallet. Write-once per (key, tx_hash, token)."""

    __tablename__ = "portfolio_transactions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "wallet_address", "chain", "tx_hash", "token_address",
            name="uq_portfolio_transactions_tx_token",
        ),
        Index("ix_portfolio_transactions_wallet_ts", "user_id", "wallet_address", "chain", "timestamp"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(sa.Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100))
    wallet_address: Mapped[str] = mapped_column(String(100))
    chain: Mapped[str] = mapped_column(String(20))
    tx_hash: Mapped[str] = mapped_column(String(128))
    token_address: Mapped[str] = mapped_column(String(100))
    token_symbol: Mapped[str] = mapped_column(String(50))
    token_name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 18))  # signed: + received, - sent
    price_usd: Mapped[Decimal] = mapped_column(Numeric(30, 12))
    price_source: Mapped[str | None] = mapped_column(String(30), nullable=True)  # PriceSource value
    value_usd: Mapped[Decimal] = mapped_column(Numeric(30, 12))
    timestamp: Mapped[int] = mapped_column(BigInteger)  # Unix epoch seconds
