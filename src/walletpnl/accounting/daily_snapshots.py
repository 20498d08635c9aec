"""DailySnapshotBuilder: gap-filled daily holdings, valuation and P&L per wallet.

P&L attribution:
    daily_pnl = (total_value - previous_total_value) - net_inflows
where net_inflows counts only external transfers (transfer_in minus
transfer_out, by USD value at transfer time). Swaps move value between tokens
inside the wallet and are not flows.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from walletpnl.db.models.portfolio_transaction import PortfolioTransaction
from walletpnl.db.repos.daily_portfolio_repo import DailyPortfolioRepo
from walletpnl.db.repos.portfolio_transaction_repo import PortfolioTransactionRepo
from walletpnl.domain.enums import TxType
from walletpnl.domain.tokens import UNKNOWN_NAME, UNKNOWN_SYMBOL
from walletpnl.infra.price.service import PriceService, utc_day
from walletpnl.sync.heartbeat import Heartbeat, beat_or_stop

logger = logging.getLogger(__name__)

ZERO = Decimal(0)
HUNDRED = Decimal(100)
# Bounds the percent when the prior day held only near-worthless dust
MAX_PNL_PERCENT = Decimal("1e12")
PERCENT_QUANTUM = Decimal("1e-8")
SECONDS_PER_DAY = 86400


class HoldingSnapshot(BaseModel):
    """One row of a day's holdings breakdown (stored as JSON)."""

    token_address: str
    symbol: str
    name: str
    amount: Decimal
    price: Decimal
    value: Decimal


def end_of_day_timestamp(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=UTC).timestamp()) + SECONDS_PER_DAY - 1


def build_daily_holdings(
    transactions: Sequence[PortfolioTransaction], today: date
) -> dict[date, dict[str, Decimal]]:
    """Cumulative holdings for every day from the first transaction day through today.

    Transactions must be ordered by timestamp. Days without activity carry the
    previous day's holdings forward unchanged.
    """
    if not transactions:
        return {}

    deltas: dict[date, dict[str, Decimal]] = {}
    for tx in transactions:
        day_deltas = deltas.setdefault(utc_day(tx.timestamp), {})
        day_deltas[tx.token_address] = day_deltas.get(tx.token_address, ZERO) + tx.amount

    first_day = min(deltas)
    last_day = max(today, max(deltas))

    daily: dict[date, dict[str, Decimal]] = {}
    running: dict[str, Decimal] = {}
    day = first_day
    while day <= last_day:
        for token, delta in deltas.get(day, {}).items():
            running[token] = running.get(token, ZERO) + delta
        daily[day] = dict(running)
        day += timedelta(days=1)
    return daily


def net_inflows_by_day(transactions: Sequence[PortfolioTransaction]) -> dict[date, Decimal]:
    """USD value transferred in minus transferred out, per day. Buys and sells are ignored."""
    flows: dict[date, Decimal] = {}
    for tx in transactions:
        if tx.type == TxType.TRANSFER_IN.value:
            sign = 1
        elif tx.type == TxType.TRANSFER_OUT.value:
            sign = -1
        else:
            continue
        day = utc_day(tx.timestamp)
        flows[day] = flows.get(day, ZERO) + sign * abs(tx.value_usd)
    return flows


def compute_daily_pnl(
    total_value: Decimal, previous_total_value: Decimal, net_inflows: Decimal
) -> tuple[Decimal, Decimal]:
    """Return (pnl, pnl_percent).

    Percent is 0 when there was no prior value, is clamped to +/-MAX_PNL_PERCENT
    and rounded to 8 places.
    """
    pnl = (total_value - previous_total_value) - net_inflows
    if previous_total_value <= 0:
        return pnl, ZERO
    percent = pnl / previous_total_value * HUNDRED
    percent = max(-MAX_PNL_PERCENT, min(MAX_PNL_PERCENT, percent))
    return pnl, percent.quantize(PERCENT_QUANTUM)


class DailySnapshotBuilder:
    """Values every day's holdings and upserts one DailyPortfolio per day."""

    def __init__(self, session: AsyncSession, prices: PriceService) -> None:
        self._tx_repo = PortfolioTransactionRepo(session)
        self._snapshot_repo = DailyPortfolioRepo(session)
        self._prices = prices

    async def build(
        self,
        user_id: str,
        wallet_address: str,
        chain: str,
        today: date | None = None,
        heartbeat: Heartbeat | None = None,
    ) -> int:
        """Recompute snapshots for a wallet. Returns the number of days written.

        `heartbeat` is called before valuing each day; a first sync can spend
        minutes on paced history lookups.
        """
        if today is None:
            today = datetime.now(UTC).date()

        transactions = await self._tx_repo.list_for_wallet(user_id, wallet_address, chain)
        if not transactions:
            logger.info("No transactions for %s, skipping snapshot calculation", wallet_address)
            return 0

        token_info: dict[str, tuple[str, str]] = {}
        for tx in transactions:
            token_info[tx.token_address] = (tx.token_symbol, tx.token_name)

        daily_holdings = build_daily_holdings(transactions, today)
        inflows = net_inflows_by_day(transactions)

        previous_total_value = ZERO
        for day in sorted(daily_holdings):
            await beat_or_stop(heartbeat)
            holdings = {token: amount for token, amount in daily_holdings[day].items() if amount != 0}
            breakdown = await self._value_holdings(holdings, token_info, day, is_today=day == today)
            total_value = sum((h.value for h in breakdown), ZERO)

            daily_pnl, daily_pnl_percent = compute_daily_pnl(
                total_value, previous_total_value, inflows.get(day, ZERO)
            )

            await self._snapshot_repo.upsert(
                user_id=user_id,
                wallet_address=wallet_address,
                chain=chain,
                day=day,
                total_value=total_value,
                daily_pnl=daily_pnl,
                daily_pnl_percent=daily_pnl_percent,
                holdings=[h.model_dump(mode="json") for h in breakdown],
            )
            previous_total_value = total_value

        logger.info("Daily snapshots calculated for %s: %d days", wallet_address, len(daily_holdings))
        return len(daily_holdings)

    async def _value_holdings(
        self,
        holdings: dict[str, Decimal],
        token_info: dict[str, tuple[str, str]],
        day: date,
        is_today: bool,
    ) -> list[HoldingSnapshot]:
        batch: dict = {}
        if is_today and holdings:
            batch = await self._prices.batch_current_prices(list(holdings))

        eod = end_of_day_timestamp(day)
        breakdown: list[HoldingSnapshot] = []
        for token, amount in holdings.items():
            quote = batch.get(token)
            if quote is None:
                quote = await self._prices.historical_price(token, eod)
            if not quote.source.is_authoritative:
                logger.debug("Valuing %s on %s with %s price %s", token, day, quote.source.value, quote.price)

            symbol, name = token_info.get(token, (UNKNOWN_SYMBOL, UNKNOWN_NAME))
            breakdown.append(HoldingSnapshot(
                token_address=token,
                symbol=symbol,
                name=name,
                amount=amount,
                price=quote.price,
                value=amount * quote.price,
            ))
        return breakdown
