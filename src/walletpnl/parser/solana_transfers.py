"""Turn a validated ledger transaction into classified wallet movements."""

from decimal import Decimal

from walletpnl.domain.enums import TxType
from walletpnl.domain.tokens import (
    NATIVE_NAME,
    NATIVE_SYMBOL,
    SOL_MINT,
    UNKNOWN_NAME,
    UNKNOWN_SYMBOL,
    lamports_to_sol,
)
from walletpnl.parser.swap_prices import DEFAULT_DUST_THRESHOLD
from walletpnl.parser.types import LedgerTx, ParsedTransfer


def classify(is_swap: bool, received: bool) -> TxType:
    """Swaps become buy/sell; everything else is an external transfer."""
    if is_swap:
        return TxType.BUY if received else TxType.SELL
    return TxType.TRANSFER_IN if received else TxType.TRANSFER_OUT


def extract_wallet_transfers(
    tx: LedgerTx, wallet_address: str, dust_threshold: Decimal = DEFAULT_DUST_THRESHOLD
) -> list[ParsedTransfer]:
    """SPL and native SOL movements touching `wallet_address`.

    A self-transfer counts as received. SOL moves below `dust_threshold` are
    fees or rent and are dropped.
    """
    transfers: list[ParsedTransfer] = []

    for t in tx.token_transfers:
        received = t.to_user_account == wallet_address
        sent = t.from_user_account == wallet_address
        if not received and not sent:
            continue
        transfers.append(ParsedTransfer(
            token_address=t.mint,
            symbol=UNKNOWN_SYMBOL,
            name=UNKNOWN_NAME,
            amount=t.token_amount if received else -t.token_amount,
            tx_type=classify(tx.is_swap, received),
        ))

    for t in tx.native_transfers:
        received = t.to_user_account == wallet_address
        sent = t.from_user_account == wallet_address
        if not received and not sent:
            continue
        sol_amount = lamports_to_sol(t.amount)
        if sol_amount < dust_threshold:
            continue
        transfers.append(ParsedTransfer(
            token_address=SOL_MINT,
            symbol=NATIVE_SYMBOL,
            name=NATIVE_NAME,
            amount=sol_amount if received else -sol_amount,
            tx_type=classify(tx.is_swap, received),
        ))

    return transfers
