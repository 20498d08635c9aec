from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from walletpnl.db.session import Base, TimestampMixin, UUIDPrimaryKey, utcnow
from walletpnl.domain.enums import SyncStatus


class WalletSync(UUIDPrimaryKey, TimestampMixin, Base):
    """Sync state for one (user, wallet, chain). Mutated only by SyncService.

    `updated_at` is written from Python on every transition so staleness checks
    do not depend on the database clock. `version` backs compare-and-set updates.
    """

    __tablename__ = "wallet_syncs"
    __table_args__ = (
        UniqueConstraint("user_id", "wallet_address", "chain", name="uq_wallet_syncs_user_wallet_chain"),
    )

    user_id: Mapped[str] = mapped_column(String(100), index=True)
    wallet_address: Mapped[str] = mapped_column(String(100))
    chain: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=SyncStatus.PENDING.value)
    start_date: Mapped[date] = mapped_column(Date)
    last_synced_cursor: Mapped[Optional[str]] = mapped_column(String(128), default=None)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    error_message: Mapped[Optional[str]] = mapped_column(Text, default=None)
    version: Mapped[int] = mapped_column(Integer, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
