"""Post-trade holdings and per-sleeve summaries."""

from decimal import ROUND_HALF_UP, Decimal

from .config import CONFIG
from .models import HoldingPost, SleeveAllocation, SleeveSummary, Trade

PCT_PLACES = Decimal("0.1")


def calculate_post_holdings(
    sleeves: list[SleeveAllocation],
    trades: list[Trade],
) -> list[HoldingPost]:
    """Apply signed trade quantities to current holdings.

    Quantities are summed per security across accounts. A holding whose
    quantity reaches zero or below is dropped.
    """
    holdings: dict[str, Decimal] = {}
    for sleeve in sleeves:
        for sec in sleeve.securities:
            held = holdings.get(sec.security_id, Decimal("0"))
            holdings[sec.security_id] = held + sec.current_qty

    for trade in trades:
        qty = holdings.get(trade.security_id, Decimal("0")) + trade.qty
        if qty > 0:
            holdings[trade.security_id] = qty
        else:
            holdings.pop(trade.security_id, None)

    return [HoldingPost(security_id, qty) for security_id, qty in holdings.items() if qty > 0]


def calculate_sleeve_summaries(
    sleeves: list[SleeveAllocation],
    trades: list[Trade],
    post_holdings: list[HoldingPost],
) -> list[SleeveSummary]:
    """Net traded quantity and value per sleeve, and its post-trade weight."""
    prices: dict[str, Decimal] = {}
    for trade in trades:
        prices.setdefault(trade.security_id, trade.est_price)
    for sleeve in sleeves:
        for sec in sleeve.securities:
            prices[sec.security_id] = sec.price

    post_qty = {h.security_id: h.qty for h in post_holdings}
    total_post_value = sum(
        (h.qty * prices.get(h.security_id, Decimal("0")) for h in post_holdings),
        start=Decimal("0"),
    )

    summaries = []
    for sleeve in sleeves:
        members = {sec.security_id for sec in sleeve.securities}
        sleeve_trades = [t for t in trades if t.security_id in members]
        trade_qty = sum((t.qty for t in sleeve_trades), start=Decimal("0"))
        trade_usd = sum((t.est_value for t in sleeve_trades), start=Decimal("0"))

        post_value = sum(
            (post_qty.get(sid, Decimal("0")) * prices[sid] for sid in members),
            start=Decimal("0"),
        )
        post_pct = post_value / total_post_value * 100 if total_post_value > 0 else Decimal("0")

        summaries.append(
            SleeveSummary(
                sleeve_id=sleeve.sleeve_id,
                trade_qty=_zero_if_small(trade_qty),
                trade_usd=_zero_if_small(trade_usd),
                post_pct=post_pct.quantize(PCT_PLACES, rounding=ROUND_HALF_UP),
            )
        )
    return summaries


def _zero_if_small(value: Decimal) -> Decimal:
    return Decimal("0") if abs(value) < CONFIG.VALUE_TOLERANCE else value
