from datetime import timedelta

from dependency_injector import containers, providers

from walletpnl.accounting.daily_snapshots import DailySnapshotBuilder
from walletpnl.config import Settings
from walletpnl.db.session import build_engine, build_session_factory
from walletpnl.infra.blockchain.solana.helius_client import HeliusClient
from walletpnl.infra.blockchain.solana.tx_loader import SolanaTxLoader
from walletpnl.infra.http.rate_limited_client import RateLimitedClient
from walletpnl.infra.price.binance import BinanceTickerProvider
from walletpnl.infra.price.cache import PriceCaches
from walletpnl.infra.price.coingecko import CoinGeckoProvider
from walletpnl.infra.price.jupiter import JupiterPriceProvider
from walletpnl.infra.price.service import PriceService
from walletpnl.sync.service import SyncService
from walletpnl.workers.scheduler import AsyncioScheduler, CelerySyncScheduler


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(Settings)

    engine = providers.Singleton(
        build_engine,
        database_url=settings.provided.database_url,
        echo=settings.provided.debug,
    )

    session_factory = providers.Singleton(
        build_session_factory,
        engine=engine,
    )

    http_client = providers.Singleton(
        RateLimitedClient,
        rate_per_second=settings.provided.http_rate_per_second,
        timeout=settings.provided.http_timeout,
    )

    helius = providers.Singleton(
        HeliusClient,
        http_client=http_client,
        api_key=settings.provided.helius_api_key,
        base_url=settings.provided.helius_api_url,
        timeout=settings.provided.http_timeout,
    )
    coingecko = providers.Singleton(
        CoinGeckoProvider,
        http_client=http_client,
        api_key=settings.provided.coingecko_api_key,
        base_url=settings.provided.coingecko_api_url,
    )
    binance = providers.Singleton(
        BinanceTickerProvider,
        http_client=http_client,
        base_url=settings.provided.binance_api_url,
    )
    jupiter = providers.Singleton(
        JupiterPriceProvider,
        http_client=http_client,
        base_url=settings.provided.jupiter_api_url,
    )

    # Process-wide: both caches outlive a single sync run
    price_caches = providers.Singleton(
        PriceCaches,
        current_ttl=settings.provided.current_price_ttl,
    )

    # Per-session collaborators; callers supply session= (and prices=)
    price_service = providers.Factory(
        PriceService,
        caches=price_caches,
        coingecko=coingecko,
        binance=binance,
        jupiter=jupiter,
        history_pacing_delay=settings.provided.history_pacing_delay,
        batch_size=settings.provided.price_batch_size,
    )
    tx_loader = providers.Factory(
        SolanaTxLoader,
        client=helius,
        page_size=settings.provided.ledger_page_size,
        page_delay=settings.provided.ledger_page_delay,
        dust_threshold=settings.provided.native_dust_threshold,
    )
    snapshot_builder = providers.Factory(DailySnapshotBuilder)

    scheduler = providers.Selector(
        settings.provided.sync_backend,
        asyncio=providers.Singleton(AsyncioScheduler),
        celery=providers.Singleton(CelerySyncScheduler),
    )

    sync_service = providers.Singleton(
        SyncService,
        session_factory=session_factory,
        price_service_factory=price_service.provider,
        tx_loader_factory=tx_loader.provider,
        snapshot_builder_factory=snapshot_builder.provider,
        scheduler=scheduler,
        start_date=settings.provided.portfolio_start_date,
        stale_after=providers.Factory(timedelta, seconds=settings.provided.stale_sync_seconds),
        heartbeat_interval=providers.Factory(timedelta, seconds=settings.provided.sync_heartbeat_seconds),
    )
