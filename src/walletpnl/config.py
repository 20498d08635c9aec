from datetime import date

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_host: str = "localhost"
    db_port: int = 54377
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "walletpnl"
    redis_url: str = "redis://localhost:6379/0"
    helius_api_key: str = ""
    helius_api_url: str = "https://api.helius.xyz/v0"
    coingecko_api_key: str = ""
    coingecko_api_url: str = "https://api.coingecko.com"
    binance_api_url: str = "https://api.binance.com"
    jupiter_api_url: str = "https://api.jup.ag"
    http_rate_per_second: float = 5.0
    http_timeout: float = 30.0
    debug: bool = False

    # Sync pipeline tuning
    portfolio_start_date: date = date(2026, 1, 1)
    stale_sync_seconds: int = 120  # processing longer than this = crashed worker
    sync_heartbeat_seconds: int = 30  # how often a live run refreshes its record
    ledger_page_size: int = 100
    ledger_page_delay: float = 0.2  # seconds between Helius pages
    history_pacing_delay: float = 3.0  # seconds before each CoinGecko history call
    native_dust_threshold: float = 0.001  # SOL; smaller native moves are fees/rent
    current_price_ttl: float = 60.0
    price_batch_size: int = 50
    sync_backend: str = "asyncio"  # "asyncio" (in-process) or "celery"

    @property
    def database_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"


settings = Settings()
