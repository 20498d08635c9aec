from walletpnl.db.repos.daily_portfolio_repo import DailyPortfolioRepo
from walletpnl.db.repos.portfolio_transaction_repo import PortfolioTransactionRepo
from walletpnl.db.repos.token_price_repo import TokenPriceRepo
from walletpnl.db.repos.wallet_sync_repo import WalletSyncRepo

__all__ = ["DailyPortfolioRepo", "PortfolioTransactionRepo", "TokenPriceRepo", "WalletSyncRepo"]
