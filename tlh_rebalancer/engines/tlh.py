"""Tax-loss harvesting swaps, alone or followed by a flat rebalance."""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from ..consolidation import consolidate_trades
from ..models import SecurityPosition, SecurityReplacement, SleeveAllocation, Trade
from ..restrictions import RestrictionChecker
from .allocation import AllocationRebalancer
from .base import TradeEngine, flatten_positions, whole_shares


class TLHSwapEngine(TradeEngine):
    """Sell taxable positions at a loss and buy an approved replacement.

    The whole position is sold and the proceeds buy as many whole shares of
    the replacement as they cover, in the same account. Replacement prices come
    from the positions themselves, then from ``price_lookup``.
    """

    def __init__(
        self,
        replacements: Iterable[SecurityReplacement] = (),
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
        price_lookup: Optional[dict[str, Decimal]] = None,
    ) -> None:
        super().__init__(checker, logger)
        self.replacements = list(replacements)
        self.price_lookup = price_lookup or {}

    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        return self.calculate_for_positions(flatten_positions(sleeves))

    def calculate_for_positions(self, securities: list[SecurityPosition]) -> list[Trade]:
        prices = dict(self.price_lookup)
        prices.update({sec.security_id: sec.price for sec in securities})
        replacement_map = self._replacement_map()
        trades: list[Trade] = []

        for sec in self.loss_candidates(securities):
            replacement = replacement_map.get(sec.security_id)
            if replacement is None or sec.current_qty <= 0:
                continue

            sell = Trade.sell(sec.account_id, sec.security_id, sec.current_qty, sec.price)
            trades.append(sell)
            proceeds = -sell.est_value

            ticker = replacement.replacement_ticker
            price = prices.get(ticker)
            if not price or price <= 0:
                self.logger.warning("No price found for replacement security %s", ticker)
                continue

            qty = whole_shares(proceeds, price)
            if qty <= 0:
                continue

            validation = self.checker.validate_trade(ticker, "BUY")
            if not validation.is_allowed:
                self.logger.warning("Replacement trade blocked: %s", validation.reason)
                continue

            trades.append(Trade.buy(sec.account_id, ticker, qty, price))
            self.logger.info(
                "Harvesting %s (gain %s): swap into %s x %s",
                sec.security_id,
                sec.unrealized_gain,
                ticker,
                qty,
            )

        return consolidate_trades(trades)

    def loss_candidates(self, securities: Iterable[SecurityPosition]) -> list[SecurityPosition]:
        """Taxable positions at a loss whose ticker is not restricted.

        Legacy positions qualify only through a loss, so harvesting never
        realizes a gain on a grandfathered holding.
        """
        return [
            sec
            for sec in securities
            if sec.is_taxable
            and sec.unrealized_gain is not None
            and sec.unrealized_gain < 0
            and self.checker.is_purchasable(sec.security_id)
        ]

    def _replacement_map(self) -> dict[str, SecurityReplacement]:
        """Preferred unrestricted replacement for each original ticker."""
        usable = [
            r for r in self.replacements if self.checker.is_purchasable(r.replacement_ticker)
        ]
        usable.sort(key=lambda r: float("inf") if r.rank is None else r.rank)

        mapping: dict[str, SecurityReplacement] = {}
        for replacement in usable:
            mapping.setdefault(replacement.original_ticker, replacement)
        return mapping


class TLHAndRebalanceEngine(TradeEngine):
    """Harvest losses first, then rebalance the resulting positions."""

    def __init__(
        self,
        replacements: Iterable[SecurityReplacement] = (),
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
        price_lookup: Optional[dict[str, Decimal]] = None,
    ) -> None:
        super().__init__(checker, logger)
        self.swap_engine = TLHSwapEngine(replacements, self.checker, self.logger, price_lookup)
        self.rebalancer = AllocationRebalancer(self.checker, self.logger)

    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        securities = flatten_positions(sleeves)
        swap_trades = self.swap_engine.calculate_for_positions(securities)

        updated = apply_trades_to_positions(securities, swap_trades)
        tradable = self.checker.filter_purchasable(updated)
        rebalance_trades = self.rebalancer.calculate_for_positions(tradable)

        return swap_trades + rebalance_trades


def apply_trades_to_positions(
    securities: list[SecurityPosition],
    trades: list[Trade],
) -> list[SecurityPosition]:
    """Positions after ``trades``; new buys enter with no target weight."""
    positions: dict[str, SecurityPosition] = {}
    for sec in securities:
        positions[sec.security_id] = sec.with_qty(sec.current_qty)

    for trade in trades:
        existing = positions.get(trade.security_id)
        if existing is not None:
            positions[trade.security_id] = existing.with_qty(existing.current_qty + trade.qty)
        elif trade.action == "BUY":
            positions[trade.security_id] = SecurityPosition(
                security_id=trade.security_id,
                current_qty=trade.qty,
                target_pct=Decimal("0"),
                price=trade.est_price,
                account_id=trade.account_id,
                is_taxable=True,
            )

    return [sec for sec in positions.values() if sec.current_qty > 0]
