from walletpnl.db.models.daily_portfolio import DailyPortfolio
from walletpnl.db.models.portfolio_transaction import PortfolioTransaction
from walletpnl.db.models.token_price import TokenPrice
from walletpnl.db.models.wallet_sync import WalletSync

__all__ = [
    "DailyPortfolio",
    "PortfolioTransaction",
    "TokenPrice",
    "WalletSync",
]
