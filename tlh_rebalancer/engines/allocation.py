"""Two-pass allocation rebalance over a flat security list."""

from decimal import Decimal

from ..config import CONFIG
from ..consolidation import consolidate_trades
from ..models import SecurityPosition, SleeveAllocation, Trade
from ..restrictions import legacy_sell_blocked
from .base import TradeEngine, flatten_positions, whole_shares


class AllocationRebalancer(TradeEngine):
    """Sell overweight positions, then buy underweights with the proceeds.

    Target percentages are per security and are read against the total market
    value of the list. Only sale proceeds fund the buy pass, and underweights
    are bought largest shortfall first.
    """

    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        return self.calculate_for_positions(flatten_positions(sleeves))

    def calculate_for_positions(self, securities: list[SecurityPosition]) -> list[Trade]:
        total_value = sum((sec.market_value for sec in securities), start=Decimal("0"))
        if total_value == 0:
            return []

        working = [sec.current_qty for sec in securities]
        trades: list[Trade] = []
        available_cash = Decimal("0")

        # Pass 1: sell overweight positions
        for i, sec in enumerate(securities):
            current_value = working[i] * sec.price
            target_value = sec.target_pct / 100 * total_value

            if current_value <= target_value + CONFIG.VALUE_TOLERANCE:
                continue
            if legacy_sell_blocked(sec, self.checker):
                continue

            full_exit = abs(target_value) < CONFIG.VALUE_TOLERANCE
            if full_exit:
                qty = working[i]
            else:
                qty = whole_shares(current_value - target_value, sec.price)

            if qty > 0:
                trade = Trade.sell(sec.account_id, sec.security_id, qty, sec.price)
                trades.append(trade)
                available_cash += -trade.est_value
                working[i] -= qty
                self.logger.debug("Sell pass: %s", trade)

        # Pass 2: buy underweight positions, largest shortfall first
        post_sell_value = sum(
            (qty * sec.price for qty, sec in zip(working, securities)), start=Decimal("0")
        )
        shortfalls = []
        for i, sec in enumerate(securities):
            shortfall = sec.target_pct / 100 * post_sell_value - working[i] * sec.price
            if shortfall > CONFIG.VALUE_TOLERANCE:
                shortfalls.append((i, sec, shortfall))
        shortfalls.sort(key=lambda item: item[2], reverse=True)

        for i, sec, shortfall in shortfalls:
            if available_cash < sec.price:
                continue

            qty = whole_shares(min(shortfall, available_cash), sec.price)
            if qty <= 0:
                continue

            validation = self.checker.validate_trade(sec.security_id, "BUY")
            if not validation.is_allowed:
                self.logger.info("Allocation buy blocked: %s", validation.reason)
                continue

            trade = Trade.buy(sec.account_id, sec.security_id, qty, sec.price)
            trades.append(trade)
            available_cash -= trade.est_value
            working[i] += qty
            self.logger.debug("Buy pass: %s", trade)

        return consolidate_trades(trades)
