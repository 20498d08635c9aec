"""Schedulers for background sync runs.

SyncService hands each run to a scheduler and gets a handle back instead of
detaching the work, so callers can wait for it or cancel it on shutdown.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

SyncJob = Callable[[], Awaitable[None]]


class SyncScheduler(ABC):
    """Strategy interface for running a sync job outside the caller's request."""

    @abstractmethod
    def schedule(self, sync_id: uuid.UUID, job: SyncJob) -> Any:
        """Start `job` for `sync_id` and return a handle to it."""

    async def join(self, sync_id: uuid.UUID | None = None) -> None:
        """Wait for scheduled work; no-op for out-of-process schedulers."""

    async def shutdown(self, cancel: bool = False) -> None:
        """Release scheduled work; no-op for out-of-process schedulers."""


class AsyncioScheduler(SyncScheduler):
    """Runs sync jobs as asyncio tasks in this process, one handle per sync record."""

    def __init__(self) -> None:
        self._tasks: dict[uuid.UUID, asyncio.Task] = {}

    def schedule(self, sync_id: uuid.UUID, job: SyncJob) -> asyncio.Task:
        task = asyncio.create_task(job(), name=f"wallet-sync-{sync_id}")
        self._tasks[sync_id] = task
        task.add_done_callback(lambda t: self._on_done(sync_id, t))
        return task

    def _on_done(self, sync_id: uuid.UUID, task: asyncio.Task) -> None:
        if self._tasks.get(sync_id) is task:
            del self._tasks[sync_id]
        if task.cancelled():
            logger.warning("Sync %s was cancelled", sync_id)
        elif task.exception() is not None:
            logger.error("Background wallet sync %s failed", sync_id, exc_info=task.exception())

    async def join(self, sync_id: uuid.UUID | None = None) -> None:
        if sync_id is not None:
            tasks = [t for t in [self._tasks.get(sync_id)] if t is not None]
        else:
            tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self, cancel: bool = False) -> None:
        tasks = list(self._tasks.values())
        if cancel:
            for task in tasks:
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class CelerySyncScheduler(SyncScheduler):
    """Dispatches sync runs to Celery workers; the handle is the AsyncResult."""

    def schedule(self, sync_id: uuid.UUID, job: SyncJob) -> Any:
        from walletpnl.workers.tasks import sync_wallet_task

        result = sync_wallet_task.delay(str(sync_id))
        logger.info("Enqueued sync %s as Celery task %s", sync_id, result.id)
        return result
