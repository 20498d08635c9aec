from enum import Enum


class Chain(str, Enum):
    """Supported blockchain networks. Values lowercase to match RPC/API conventions."""

    SOLANA = "solana"
