from walletpnl.domain.enums.chain import Chain
from walletpnl.domain.enums.price_source import PriceSource
from walletpnl.domain.enums.status import SyncStatus
from walletpnl.domain.enums.tx_type import TransferDirection, TxType

__all__ = [
    "Chain",
    "PriceSource",
    "SyncStatus",
    "TransferDirection",
    "TxType",
]
