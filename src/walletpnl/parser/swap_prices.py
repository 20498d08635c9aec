"""Derive implied USD prices from stablecoin swaps.

Example: wallet sends 1 SOL and receives 100 USDC, so SOL = $100 and USDC = $1.
"""

from decimal import Decimal

from walletpnl.domain.enums import TransferDirection
from walletpnl.domain.tokens import SOL_MINT, is_stablecoin, lamports_to_sol
from walletpnl.parser.types import LedgerTx, SwapLeg

DEFAULT_DUST_THRESHOLD = Decimal("0.001")


def build_swap_legs(
    tx: LedgerTx, wallet_address: str, dust_threshold: Decimal = DEFAULT_DUST_THRESHOLD
) -> list[SwapLeg]:
    """Token transfers first, then above-dust SOL transfers, each tagged sent/received."""
    legs: list[SwapLeg] = []

    for t in tx.token_transfers:
        if t.from_user_account == wallet_address:
            legs.append(SwapLeg(mint=t.mint, amount=t.token_amount, direction=TransferDirection.SENT))
        elif t.to_user_account == wallet_address:
            legs.append(SwapLeg(mint=t.mint, amount=t.token_amount, direction=TransferDirection.RECEIVED))

    for t in tx.native_transfers:
        sol_amount = lamports_to_sol(t.amount)
        if sol_amount < dust_threshold:
            continue
        if t.from_user_account == wallet_address:
            legs.append(SwapLeg(mint=SOL_MINT, amount=sol_amount, direction=TransferDirection.SENT))
        elif t.to_user_account == wallet_address:
            legs.append(SwapLeg(mint=SOL_MINT, amount=sol_amount, direction=TransferDirection.RECEIVED))

    return legs


def extract_swap_prices(
    tx: LedgerTx, wallet_address: str, dust_threshold: Decimal = DEFAULT_DUST_THRESHOLD
) -> dict[str, Decimal]:
    """Return {mint: usd_price} implied by the first sent/received pair of a swap.

    Only stablecoin-anchored pairs are priced. Non-swaps, pairs with no stablecoin
    or two stablecoins, and multi-leg routes beyond the first pair yield nothing
    for the unpriced side.
    """
    if not tx.is_swap:
        return {}

    legs = build_swap_legs(tx, wallet_address, dust_threshold)
    sent = next((leg for leg in legs if leg.direction == TransferDirection.SENT), None)
    received = next((leg for leg in legs if leg.direction == TransferDirection.RECEIVED), None)
    if sent is None or received is None:
        return {}

    sent_stable = is_stablecoin(sent.mint)
    received_stable = is_stablecoin(received.mint)
    if sent_stable == received_stable:
        return {}

    stable, other = (sent, received) if sent_stable else (received, sent)
    if other.amount <= 0 or stable.amount <= 0:
        return {}

    return {
        other.mint: stable.amount / other.amount,
        stable.mint: Decimal(1),
    }
