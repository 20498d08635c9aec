import uuid
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.session import utcnow
from walletpnl.domain.enums import SyncStatus


class WalletSyncRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, wallet_address: str, chain: str) -> Optional[WalletSync]:
        result = await self._session.execute(
            select(WalletSync).where(
                WalletSync.user_id == user_id,
                WalletSync.wallet_address == wallet_address,
                WalletSync.chain == chain,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, sync_id: uuid.UUID) -> Optional[WalletSync]:
        result = await self._session.execute(
            select(WalletSync).where(WalletSync.id == sync_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(
        self, user_id: str, wallet_address: str, chain: str, start_date: date
    ) -> tuple[WalletSync, bool]:
        """Return (sync, created). A concurrent insert of the same key resolves to the existing row."""
        existing = await self.get(user_id, wallet_address, chain)
        if existing is not None:
            return existing, False

        sync = WalletSync(
            user_id=user_id,
            wallet_address=wallet_address,
            chain=chain,
            status=SyncStatus.PENDING.value,
            start_date=start_date,
        )
        self._session.add(sync)
        try:
            await self._session.flush()
        except IntegrityError:
            # Lost the insert race; the winner's row is the record
            await self._session.rollback()
            existing = await self.get(user_id, wallet_address, chain)
            if existing is None:
                raise
            return existing, False
        return sync, True

    async def transition(
        self,
        sync: WalletSync,
        from_statuses: Iterable[SyncStatus],
        expected_version: int | None = None,
        **values: Any,
    ) -> bool:
        """Compare-and-set update.

        Applies `values` only if the row still has the version we read (or
        `expected_version`) and one of `from_statuses`. Returns False when
        another writer got there first. Every successful write bumps `version`
        and `updated_at`, so a successful transition doubles as a heartbeat.
        """
        if isinstance(values.get("status"), SyncStatus):
            values["status"] = values["status"].value
        version = sync.version if expected_version is None else expected_version

        result = await self._session.execute(
            update(WalletSync)
            .where(
                WalletSync.id == sync.id,
                WalletSync.version == version,
                WalletSync.status.in_([s.value for s in from_statuses]),
            )
            .values(version=WalletSync.version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await self._session.refresh(sync)
        return result.rowcount == 1
