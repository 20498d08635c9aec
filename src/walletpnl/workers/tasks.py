"""Celery tasks for background processing."""

import asyncio
import logging

from walletpnl.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="sync_wallet")
def sync_wallet_task(self, sync_id: str) -> dict:
    """Run one wallet sync to completion or failure.

    Bridges to async code via asyncio.run(). Each task invocation builds its
    own container, engine and HTTP client (no shared state with the caller).
    Failures are recorded on the sync record, so the task itself never retries.
    """
    return asyncio.run(_sync_wallet_async(sync_id))


async def _sync_wallet_async(sync_id: str) -> dict:
    import uuid

    from walletpnl.container import Container

    container = Container()
    try:
        service = container.sync_service()
        await service.process_sync(uuid.UUID(sync_id))
        status = await service.get_sync_status_by_id(uuid.UUID(sync_id))
        return {"status": status.status if status else "missing", "sync_id": sync_id}
    finally:
        await container.http_client().close()
        await container.engine().dispose()
