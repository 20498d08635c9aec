"""Trigger a wallet sync, wait for it, and print the daily snapshots.

Usage:
    PYTHONPATH=src python scripts/run_sync.py <user_id> <wallet_address> [--create-schema]
"""

import asyncio
import logging
import sys
import time

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s - %(message)s")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


async def main(user_id: str, wallet_address: str, create_schema: bool) -> None:
    from walletpnl.container import Container
    from walletpnl.db.session import create_all

    container = Container()
    container.settings().sync_backend = "asyncio"
    engine = container.engine()
    if create_schema:
        await create_all(engine)

    service = container.sync_service()
    try:
        t0 = time.time()
        sync = await service.trigger_sync(user_id, wallet_address)
        print(f"Sync {sync.id}: {sync.status}")
        await service.scheduler.join(sync.id)

        sync = await service.get_sync_status(user_id, wallet_address)
        print(f"Finished in {time.time() - t0:.1f}s  status={sync.status}  error={sync.error_message}")

        snapshots = await service.get_daily_snapshots(user_id, wallet_address)
        print(f"\n{'date':<12}{'total USD':>16}{'P&L':>14}{'P&L %':>10}")
        for s in snapshots:
            print(f"{s.date.isoformat():<12}{s.total_value:>16.2f}{s.daily_pnl:>14.2f}{s.daily_pnl_percent:>10.2f}")
    finally:
        await service.shutdown(cancel=True)
        await container.http_client().close()
        await engine.dispose()


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if len(args) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(args[0], args[1], "--create-schema" in sys.argv))
