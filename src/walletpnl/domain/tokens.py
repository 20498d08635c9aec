"""Well-known Solana mints."""

from decimal import Decimal

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

# Stablecoins priced at exactly $1 when anchoring swaps
STABLECOIN_MINTS = frozenset({USDC_MINT, USDT_MINT})

LAMPORTS_PER_SOL = Decimal(10**9)

NATIVE_SYMBOL = "SOL"
NATIVE_NAME = "Solana"
UNKNOWN_SYMBOL = "UNKNOWN"
UNKNOWN_NAME = "Unknown Token"


def is_stablecoin(mint: str) -> bool:
    return mint in STABLECOIN_MINTS


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL
