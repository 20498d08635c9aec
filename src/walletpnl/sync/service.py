"""SyncService: owns the wallet sync lifecycle.

One sync record per (user, wallet, chain). Triggering resets a finished or
stale record and schedules a background run; the run claims the record,
ingests the ledger, rebuilds daily snapshots and records the outcome.

Every status write is a compare-and-set on (status, version), so two
triggers or two runs racing on the same record cannot both win.
"""

import logging
import uuid
from datetime import UTC, date, datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletpnl.accounting.daily_snapshots import DailySnapshotBuilder
from walletpnl.db.models.daily_portfolio import DailyPortfolio
from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.repos.daily_portfolio_repo import DailyPortfolioRepo
from walletpnl.db.repos.wallet_sync_repo import WalletSyncRepo
from walletpnl.db.session import as_utc, utcnow
from walletpnl.domain.enums import Chain, SyncStatus
from walletpnl.exceptions import SyncFailure, SyncSuperseded
from walletpnl.infra.blockchain.solana.tx_loader import SolanaTxLoader
from walletpnl.infra.price.service import PriceService
from walletpnl.sync.heartbeat import RunHeartbeat
from walletpnl.workers.scheduler import AsyncioScheduler, SyncScheduler

logger = logging.getLogger(__name__)

STALE_SYNC_MESSAGE = "Stale sync detected, restarting"

PriceServiceFactory = Callable[..., PriceService]
TxLoaderFactory = Callable[..., SolanaTxLoader]
SnapshotBuilderFactory = Callable[..., DailySnapshotBuilder]


class SyncService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        price_service_factory: PriceServiceFactory,
        tx_loader_factory: TxLoaderFactory,
        snapshot_builder_factory: SnapshotBuilderFactory,
        scheduler: SyncScheduler | None = None,
        start_date: date = date(2026, 1, 1),
        stale_after: timedelta = timedelta(minutes=2),
        heartbeat_interval: timedelta = timedelta(seconds=30),
    ) -> None:
        self._session_factory = session_factory
        self._price_service_factory = price_service_factory
        self._tx_loader_factory = tx_loader_factory
        self._snapshot_builder_factory = snapshot_builder_factory
        self._scheduler = scheduler or AsyncioScheduler()
        self._start_date = start_date
        self._stale_after = stale_after
        # Several beats must fit in one stale window
        self._heartbeat_interval = min(heartbeat_interval, stale_after / 4)

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    def is_stale(self, sync: WalletSync, now: datetime | None = None) -> bool:
        """A processing record whose last write is older than the stale threshold."""
        if sync.status != SyncStatus.PROCESSING.value:
            return False
        now = now or utcnow()
        return now - as_utc(sync.updated_at) > self._stale_after

    async def trigger_sync(
        self, user_id: str, wallet_address: str, chain: str = Chain.SOLANA.value
    ) -> WalletSync:
        """Ensure a sync is pending or running for the key and return its record.

        Schedules a background run only when this call moved the record into
        pending; an existing pending or live processing record is returned as is.
        """
        async with self._session_factory() as session:
            repo = WalletSyncRepo(session)
            sync, created = await repo.get_or_create(user_id, wallet_address, chain, self._start_date)

            if created:
                logger.info("Created wallet sync %s for %s (%s)", sync.id, wallet_address, chain)
            elif self.is_stale(sync):
                logger.warning("Sync %s for %s is stale (last update %s), restarting", sync.id, wallet_address, sync.updated_at)
                if not await self._reset(session, sync, [SyncStatus.PROCESSING], error_message=STALE_SYNC_MESSAGE):
                    logger.info("Sync %s was reset concurrently, not scheduling", sync.id)
                    return sync
            elif SyncStatus(sync.status).is_active:
                logger.info("Sync %s for %s already %s", sync.id, wallet_address, sync.status)
                return sync
            else:
                logger.info("Re-triggering %s sync %s for %s", sync.status, sync.id, wallet_address)
                if not await self._reset(
                    session, sync, [SyncStatus.COMPLETED, SyncStatus.FAILED], error_message=None
                ):
                    logger.info("Sync %s was re-triggered concurrently, not scheduling", sync.id)
                    return sync

            await session.commit()

        sync_id = sync.id
        self._scheduler.schedule(sync_id, lambda: self.process_sync(sync_id))
        return sync

    async def _reset(
        self,
        session: AsyncSession,
        sync: WalletSync,
        from_statuses: list[SyncStatus],
        error_message: str | None,
    ) -> bool:
        """Move the record back to pending and drop its snapshots, if we win the write."""
        won = await WalletSyncRepo(session).transition(
            sync,
            from_statuses,
            status=SyncStatus.PENDING,
            error_message=error_message,
            last_synced_cursor=None,
        )
        if not won:
            return False

        deleted = await DailyPortfolioRepo(session).delete_for_wallet(sync.user_id, sync.wallet_address, sync.chain)
        logger.info("Cleared %d daily snapshots for %s", deleted, sync.wallet_address)
        return True

    async def process_sync(self, sync_id: uuid.UUID) -> None:
        """Run one sync to completion or failure. Never raises."""
        async with self._session_factory() as session:
            repo = WalletSyncRepo(session)
            heartbeat: RunHeartbeat | None = None

            try:
                sync = await repo.get_by_id(sync_id)
                if sync is None:
                    raise SyncFailure(f"Wallet sync {sync_id} not found")

                if not await repo.transition(sync, [SyncStatus.PENDING], status=SyncStatus.PROCESSING):
                    logger.info("Sync %s not claimable (status=%s), skipping", sync_id, sync.status)
                    await session.rollback()
                    return
                await session.commit()
                heartbeat = RunHeartbeat(session, sync, sync.version, self._heartbeat_interval)
                logger.info("Processing sync %s for %s", sync_id, sync.wallet_address)

                prices = self._price_service_factory(session=session)
                loader = self._tx_loader_factory(session=session, prices=prices)
                result = await loader.load_wallet(sync, heartbeat=heartbeat)

                if not await heartbeat.beat(force=True, last_synced_cursor=result.cursor):
                    raise SyncSuperseded(f"Sync {sync_id} was superseded by a newer run")

                builder = self._snapshot_builder_factory(session=session, prices=prices)
                days = await builder.build(sync.user_id, sync.wallet_address, sync.chain, heartbeat=heartbeat)

                if not await heartbeat.beat(
                    force=True, status=SyncStatus.COMPLETED, completed_at=utcnow(), error_message=None
                ):
                    raise SyncSuperseded(f"Sync {sync_id} was superseded by a newer run")
                logger.info(
                    "Sync %s completed: %d fetched, %d stored, %d days",
                    sync_id, result.fetched, result.stored, days,
                )

            except SyncSuperseded as e:
                # The newer run owns the record now; leave it alone
                logger.warning("Sync %s stopped: %s", sync_id, e)
                await session.rollback()
            except Exception as e:
                logger.exception("Sync %s failed", sync_id)
                await self._record_failure(session, sync_id, heartbeat.version if heartbeat else None, e)

    async def _record_failure(
        self,
        session: AsyncSession,
        sync_id: uuid.UUID,
        owned_version: int | None,
        error: Exception,
    ) -> None:
        """Mark the record failed, but only if this run still owns it."""
        try:
            await session.rollback()
            if owned_version is None:
                return
            repo = WalletSyncRepo(session)
            # rollback expired the loaded instance
            sync = await repo.get_by_id(sync_id)
            if sync is None:
                return
            marked = await repo.transition(
                sync,
                [SyncStatus.PROCESSING],
                expected_version=owned_version,
                status=SyncStatus.FAILED,
                error_message=str(error) or type(error).__name__,
            )
            await session.commit()
            if not marked:
                logger.info("Sync %s moved on before the failure could be recorded", sync_id)
        except Exception:
            logger.exception("Could not record failure for sync %s", sync_id)

    async def get_sync_status(
        self, user_id: str, wallet_address: str, chain: str = Chain.SOLANA.value
    ) -> WalletSync | None:
        async with self._session_factory() as session:
            return await WalletSyncRepo(session).get(user_id, wallet_address, chain)

    async def get_sync_status_by_id(self, sync_id: uuid.UUID) -> WalletSync | None:
        async with self._session_factory() as session:
            return await WalletSyncRepo(session).get_by_id(sync_id)

    async def get_daily_snapshots(
        self,
        user_id: str,
        wallet_address: str,
        chain: str = Chain.SOLANA.value,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[DailyPortfolio]:
        """Snapshots in [start_date, end_date], oldest first. Defaults: portfolio start to today."""
        start = start_date or self._start_date
        end = end_date or datetime.now(UTC).date()
        async with self._session_factory() as session:
            return await DailyPortfolioRepo(session).list_range(user_id, wallet_address, chain, start, end)

    async def shutdown(self, cancel: bool = False) -> None:
        await self._scheduler.shutdown(cancel=cancel)
