"""Tests for SyncService: trigger rules, run lifecycle and failure recording."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import ANY, AsyncMock, MagicMock

import pytest

from walletpnl.accounting.daily_snapshots import DailySnapshotBuilder
from walletpnl.db.models.daily_portfolio import DailyPortfolio
from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.repos.wallet_sync_repo import WalletSyncRepo
from walletpnl.db.session import utcnow
from walletpnl.domain.enums import SyncStatus
from walletpnl.exceptions import SyncSuperseded, TransactionFetchError
from walletpnl.infra.blockchain.solana.tx_loader import LoadResult, SolanaTxLoader
from walletpnl.infra.price.service import PriceService
from walletpnl.sync.service import STALE_SYNC_MESSAGE, SyncService
from walletpnl.workers.scheduler import AsyncioScheduler, SyncScheduler

WALLET = "Wa11et1111111111111111111111111111111111111"


@pytest.fixture()
def loader():
    loader = AsyncMock(spec=SolanaTxLoader)
    loader.load_wallet.return_value = LoadResult(fetched=3, stored=3, cursor="newest-sig")
    return loader


@pytest.fixture()
def builder():
    builder = AsyncMock(spec=DailySnapshotBuilder)
    builder.build.return_value = 2
    return builder


def _service(session_factory, loader, builder, scheduler=None, **kwargs) -> SyncService:
    return SyncService(
        session_factory,
        price_service_factory=MagicMock(return_value=AsyncMock(spec=PriceService)),
        tx_loader_factory=MagicMock(return_value=loader),
        snapshot_builder_factory=MagicMock(return_value=builder),
        scheduler=scheduler,
        start_date=date(2026, 1, 1),
        **kwargs,
    )


def _recording_scheduler() -> MagicMock:
    return MagicMock(spec=SyncScheduler)


async def _seed(session_factory, status: SyncStatus, age: timedelta = timedelta(0), snapshots: int = 0) -> WalletSync:
    async with session_factory() as session:
        sync = WalletSync(
            user_id="u1",
            wallet_address=WALLET,
            chain="solana",
            status=status.value,
            start_date=date(2026, 1, 1),
            updated_at=utcnow() - age,
        )
        session.add(sync)
        for i in range(snapshots):
            session.add(DailyPortfolio(
                user_id="u1",
                wallet_address=WALLET,
                chain="solana",
                date=date(2026, 1, 2 + i),
                total_value=Decimal(1),
                daily_pnl=Decimal(0),
                daily_pnl_percent=Decimal(0),
                holdings=[],
            ))
        await session.commit()
        return sync


async def _snapshot_count(service) -> int:
    return len(await service.get_daily_snapshots("u1", WALLET, "solana", end_date=date(2026, 12, 31)))


class TestTriggerSync:
    async def test_first_trigger_creates_and_schedules(self, session_factory, loader, builder):
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler)

        sync = await service.trigger_sync("u1", WALLET, "solana")

        assert sync.status == SyncStatus.PENDING.value
        assert sync.start_date == date(2026, 1, 1)
        scheduler.schedule.assert_called_once()
        assert scheduler.schedule.call_args.args[0] == sync.id

    async def test_pending_is_not_rescheduled(self, session_factory, loader, builder):
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler)

        first = await service.trigger_sync("u1", WALLET, "solana")
        second = await service.trigger_sync("u1", WALLET, "solana")

        assert first.id == second.id
        assert second.status == SyncStatus.PENDING.value
        assert scheduler.schedule.call_count == 1

    async def test_live_processing_is_left_alone(self, session_factory, loader, builder):
        seeded = await _seed(session_factory, SyncStatus.PROCESSING, age=timedelta(seconds=30), snapshots=1)
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler)

        sync = await service.trigger_sync("u1", WALLET, "solana")

        assert sync.id == seeded.id
        assert sync.status == SyncStatus.PROCESSING.value
        scheduler.schedule.assert_not_called()
        assert await _snapshot_count(service) == 1

    async def test_stale_processing_is_restarted(self, session_factory, loader, builder):
        await _seed(session_factory, SyncStatus.PROCESSING, age=timedelta(minutes=5), snapshots=2)
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler)

        sync = await service.trigger_sync("u1", WALLET, "solana")

        assert sync.status == SyncStatus.PENDING.value
        assert sync.error_message == STALE_SYNC_MESSAGE
        scheduler.schedule.assert_called_once()
        assert await _snapshot_count(service) == 0

    @pytest.mark.parametrize("status", [SyncStatus.COMPLETED, SyncStatus.FAILED])
    async def test_finished_sync_is_reset(self, session_factory, loader, builder, status):
        await _seed(session_factory, status, snapshots=3)
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler)

        sync = await service.trigger_sync("u1", WALLET, "solana")

        assert sync.status == SyncStatus.PENDING.value
        assert sync.error_message is None
        assert sync.last_synced_cursor is None
        scheduler.schedule.assert_called_once()
        assert await _snapshot_count(service) == 0


class TestProcessSync:
    async def test_successful_run(self, session_factory, loader, builder):
        service = _service(session_factory, loader, builder, AsyncioScheduler())

        sync = await service.trigger_sync("u1", WALLET, "solana")
        await service.scheduler.join(sync.id)

        done = await service.get_sync_status("u1", WALLET, "solana")
        assert done.status == SyncStatus.COMPLETED.value
        assert done.completed_at is not None
        assert done.error_message is None
        assert done.last_synced_cursor == "newest-sig"
        loader.load_wallet.assert_awaited_once()
        builder.build.assert_awaited_once_with("u1", WALLET, "solana", heartbeat=ANY)

    async def test_failure_is_recorded_not_raised(self, session_factory, loader, builder):
        loader.load_wallet.side_effect = TransactionFetchError("Failed to fetch transactions from Helius: 500")
        service = _service(session_factory, loader, builder, _recording_scheduler())
        sync = await service.trigger_sync("u1", WALLET, "solana")

        await service.process_sync(sync.id)

        failed = await service.get_sync_status("u1", WALLET, "solana")
        assert failed.status == SyncStatus.FAILED.value
        assert failed.error_message == "Failed to fetch transactions from Helius: 500"
        builder.build.assert_not_called()

    async def test_builder_failure_is_recorded(self, session_factory, loader, builder):
        builder.build.side_effect = RuntimeError("valuation exploded")
        service = _service(session_factory, loader, builder, _recording_scheduler())
        sync = await service.trigger_sync("u1", WALLET, "solana")

        await service.process_sync(sync.id)

        failed = await service.get_sync_status("u1", WALLET, "solana")
        assert failed.status == SyncStatus.FAILED.value
        assert failed.error_message == "valuation exploded"

    async def test_only_pending_records_are_claimed(self, session_factory, loader, builder):
        seeded = await _seed(session_factory, SyncStatus.COMPLETED)
        service = _service(session_factory, loader, builder, _recording_scheduler())

        await service.process_sync(seeded.id)

        loader.load_wallet.assert_not_called()
        assert (await service.get_sync_status("u1", WALLET, "solana")).status == SyncStatus.COMPLETED.value

    async def test_missing_record_does_not_raise(self, session_factory, loader, builder):
        import uuid

        service = _service(session_factory, loader, builder, _recording_scheduler())
        await service.process_sync(uuid.uuid4())
        loader.load_wallet.assert_not_called()

    async def test_superseded_run_does_not_overwrite(self, session_factory, loader, builder):
        service = _service(session_factory, loader, builder, _recording_scheduler())
        sync = await service.trigger_sync("u1", WALLET, "solana")

        async def reset_underneath(_sync, heartbeat=None):
            # Another trigger declares this run stale and resets the record
            async with session_factory() as other:
                repo = WalletSyncRepo(other)
                current = await repo.get_by_id(sync.id)
                await repo.transition(
                    current, [SyncStatus.PROCESSING], status=SyncStatus.PENDING, error_message=STALE_SYNC_MESSAGE
                )
                await other.commit()
            return LoadResult(fetched=0, stored=0, cursor=None)

        loader.load_wallet.side_effect = reset_underneath

        await service.process_sync(sync.id)

        current = await service.get_sync_status("u1", WALLET, "solana")
        assert current.status == SyncStatus.PENDING.value
        assert current.error_message == STALE_SYNC_MESSAGE
        builder.build.assert_not_called()


class TestHeartbeat:
    async def test_long_build_is_not_mistaken_for_stale(self, session_factory, loader, builder):
        scheduler = _recording_scheduler()
        service = _service(session_factory, loader, builder, scheduler, stale_after=timedelta(seconds=0.5))
        sync = await service.trigger_sync("u1", WALLET, "solana")
        seen: list[str] = []

        async def slow_build(user_id, wallet_address, chain, heartbeat=None):
            # Runs well past the stale window, beating as it goes
            for _ in range(3):
                await asyncio.sleep(0.3)
                assert await heartbeat()
            retriggered = await service.trigger_sync(user_id, wallet_address, chain)
            seen.append(retriggered.status)
            return 3

        builder.build.side_effect = slow_build

        await service.process_sync(sync.id)

        assert seen == [SyncStatus.PROCESSING.value]
        assert scheduler.schedule.call_count == 1
        done = await service.get_sync_status("u1", WALLET, "solana")
        assert done.status == SyncStatus.COMPLETED.value
        assert done.error_message is None

    async def test_loader_receives_heartbeat_that_stops_superseded_run(self, session_factory, loader, builder):
        service = _service(session_factory, loader, builder, _recording_scheduler())
        sync = await service.trigger_sync("u1", WALLET, "solana")

        async def load_then_get_reset(_sync, heartbeat=None):
            async with session_factory() as other:
                repo = WalletSyncRepo(other)
                current = await repo.get_by_id(sync.id)
                await repo.transition(
                    current, [SyncStatus.PROCESSING], status=SyncStatus.PENDING, error_message=STALE_SYNC_MESSAGE
                )
                await other.commit()
            # Mid-load beat now finds the record taken over
            assert heartbeat is not None
            assert not await heartbeat.beat(force=True)
            raise SyncSuperseded("Sync was superseded by a newer run")

        loader.load_wallet.side_effect = load_then_get_reset

        await service.process_sync(sync.id)

        current = await service.get_sync_status("u1", WALLET, "solana")
        assert current.status == SyncStatus.PENDING.value
        assert current.error_message == STALE_SYNC_MESSAGE
        builder.build.assert_not_called()


class TestStaleness:
    def test_only_processing_can_be_stale(self, session_factory, loader, builder):
        service = _service(session_factory, loader, builder)
        old = utcnow() - timedelta(hours=1)

        assert service.is_stale(WalletSync(status=SyncStatus.PROCESSING.value, updated_at=old))
        assert not service.is_stale(WalletSync(status=SyncStatus.PENDING.value, updated_at=old))
        assert not service.is_stale(WalletSync(status=SyncStatus.PROCESSING.value, updated_at=utcnow()))
