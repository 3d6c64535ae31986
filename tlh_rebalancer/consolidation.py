"""Merging of trades that hit the same security, account and side."""

from decimal import Decimal
from typing import Iterable

from .config import CONFIG
from .models import Trade


def consolidate_trades(trades: Iterable[Trade]) -> list[Trade]:
    """Merge trades sharing (security, account, action) into one order each.

    Quantities and values are summed and the price becomes the quantity-weighted
    average. Groups keep the order in which they were first seen, and any group
    whose net quantity is within 0.001 of zero is dropped.
    """
    grouped: dict[tuple[str, str, str], Trade] = {}

    for trade in trades:
        key = (trade.security_id, trade.account_id, trade.action)
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = trade
            continue

        qty = existing.qty + trade.qty
        value = existing.est_value + trade.est_value
        price = abs(value / qty) if qty != 0 else existing.est_price
        grouped[key] = Trade(
            account_id=existing.account_id,
            security_id=existing.security_id,
            action=existing.action,
            qty=qty,
            est_price=price,
            est_value=value,
        )

    return [t for t in grouped.values() if abs(t.qty) > CONFIG.QTY_EPSILON]


def net_trade_value(trades: Iterable[Trade]) -> Decimal:
    """Signed sum of trade values: positive when buys exceed sells."""
    return sum((t.est_value for t in trades), start=Decimal("0"))
