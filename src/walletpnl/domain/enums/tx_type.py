from enum import Enum


class TxType(str, Enum):
    """Ledger row classification. Only transfers count as external flows."""

    BUY = "buy"
    SELL = "sell"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


class TransferDirection(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
