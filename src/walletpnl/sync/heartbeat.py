"""Liveness beats for a running sync.

A processing record counts as stale once `updated_at` falls behind the stale
window, so a run that is still making progress has to keep touching it. The
loader and the snapshot builder call the beat from their inner loops; the
beat only writes when the interval has elapsed.
"""

import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.wallet_sync import WalletSync
from walletpnl.db.repos.wallet_sync_repo import WalletSyncRepo
from walletpnl.domain.enums import SyncStatus
from walletpnl.exceptions import SyncSuperseded

logger = logging.getLogger(__name__)

# Returns False once the run no longer owns its record
Heartbeat = Callable[[], Awaitable[bool]]


async def beat_or_stop(heartbeat: Heartbeat | None) -> None:
    """Call `heartbeat` if given; raise SyncSuperseded when the run lost its record."""
    if heartbeat is not None and not await heartbeat():
        raise SyncSuperseded("Sync was superseded by a newer run")


class RunHeartbeat:
    """Compare-and-set touch of a processing record, throttled to `interval`.

    Each successful beat commits, so everything the run wrote so far is
    durable and the record's new version is what the next beat expects.
    """

    def __init__(
        self,
        session: AsyncSession,
        sync: WalletSync,
        version: int,
        interval: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repo = WalletSyncRepo(session)
        self._session = session
        self._sync = sync
        self._interval = interval.total_seconds()
        self._clock = clock
        self._last_beat = clock()
        self.version = version

    async def __call__(self) -> bool:
        return await self.beat()

    async def beat(self, force: bool = False, **values) -> bool:
        now = self._clock()
        if not force and now - self._last_beat < self._interval:
            return True

        if not await self._repo.transition(
            self._sync, [SyncStatus.PROCESSING], expected_version=self.version, **values
        ):
            logger.warning("Sync %s lost its record (now %s), stopping", self._sync.id, self._sync.status)
            return False
        self.version = self._sync.version
        self._last_beat = now
        await self._session.commit()
        return True
