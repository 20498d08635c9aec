"""Core data types for ledger parsing.

Helius payloads are validated into these models at the ingestion boundary so
nothing loosely typed travels further into the pipeline.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from walletpnl.domain.enums import TransferDirection, TxType

SWAP_TX_TYPE = "SWAP"


class TokenTransfer(BaseModel):
    """SPL token movement as reported by Helius. Amount is already decimal-adjusted."""

    model_config = ConfigDict(populate_by_name=True)

    mint: str
    token_amount: Decimal = Field(alias="tokenAmount")
    from_user_account: str = Field(default="", alias="fromUserAccount")
    to_user_account: str = Field(default="", alias="toUserAccount")

    @field_validator("from_user_account", "to_user_account", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class NativeTransfer(BaseModel):
    """SOL movement in lamports."""

    model_config = ConfigDict(populate_by_name=True)

    amount: int
    from_user_account: str = Field(default="", alias="fromUserAccount")
    to_user_account: str = Field(default="", alias="toUserAccount")

    @field_validator("from_user_account", "to_user_account", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class LedgerTx(BaseModel):
    """One parsed transaction from the ledger API."""

    model_config = ConfigDict(populate_by_name=True)

    signature: str
    timestamp: int  # Unix seconds
    type: str = "UNKNOWN"
    token_transfers: list[TokenTransfer] = Field(default_factory=list, alias="tokenTransfers")
    native_transfers: list[NativeTransfer] = Field(default_factory=list, alias="nativeTransfers")

    @field_validator("token_transfers", "native_transfers", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def is_swap(self) -> bool:
        return self.type == SWAP_TX_TYPE


class SwapLeg(BaseModel):
    """One directional asset movement within a swap."""

    mint: str
    amount: Decimal
    direction: TransferDirection


class ParsedTransfer(BaseModel):
    """A classified wallet movement, ready to be priced and stored. Amount is signed."""

    token_address: str
    symbol: str
    name: str
    amount: Decimal  # positive = received, negative = sent
    tx_type: TxType
