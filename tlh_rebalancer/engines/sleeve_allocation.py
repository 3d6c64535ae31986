"""Sleeve-aware allocation rebalance.

Works on sleeve totals rather than individual security weights:

1. Overweight sleeves sell their least preferred securities first, choosing
   each share count (within one share of the naive amount) that lands the
   sleeve closest to its target.
2. Each underweight sleeve buys its preferred purchasable security up to its
   deficit.
3. Remaining cash is spent one share at a time, always on the purchase that
   leaves the smallest total squared dollar deviation across all sleeves.

Cash is tracked per account. It comes from sale proceeds plus whatever the
cash sleeve holds above its own target.
"""

import logging
from decimal import Decimal
from typing import Optional

from ..config import CONFIG
from ..consolidation import consolidate_trades, net_trade_value
from ..errors import ValidationError
from ..models import SecurityPosition, SleeveAllocation, Trade
from ..restrictions import RestrictionChecker, legacy_sell_blocked, sorted_by_rank
from .base import TradeEngine, whole_shares
from .overinvestment import CashOverinvestmentDeployer
from .search import CashLedger, PurchaseCandidate, SleeveValueTracker, select_best_purchase


class SleeveAllocationRebalancer(TradeEngine):
    """Sell overweight sleeves, seed underweight ones, then greedy-fill."""

    def __init__(
        self,
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
        allow_overinvestment: bool = False,
        max_overinvestment_percent: Decimal = CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT,
    ) -> None:
        super().__init__(checker, logger)
        self.allow_overinvestment = allow_overinvestment
        self.max_overinvestment_percent = max_overinvestment_percent

    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        cash_sleeve = next((s for s in sleeves if s.is_cash), None)
        investable = [s for s in sleeves if not s.is_cash]
        eligible = [s for s in investable if s.target_pct > 0]

        if not eligible:
            targets = ", ".join(f"{s.sleeve_id}: {s.target_pct}%" for s in investable)
            raise ValidationError(
                "No sleeves can be processed for rebalancing. All sleeves have "
                f"zero or negative target percentages. Sleeve targets: {targets}",
                "sleeves",
            )

        self.logger.info(
            "Sleeve allocation rebalance: %d sleeves (%d eligible)",
            len(sleeves),
            len(eligible),
        )
        restricted = self.checker.restricted_tickers()
        if restricted:
            self.logger.info("Wash sale restricted tickers: %s", sorted(restricted))

        ledger = CashLedger()
        if cash_sleeve is not None:
            self._seed_from_cash_sleeve(cash_sleeve, ledger)

        tracker = SleeveValueTracker(investable)
        trades: list[Trade] = []

        for sleeve in investable:
            trades.extend(self._sell_overweight(sleeve, ledger, tracker))

        for sleeve in eligible:
            trade = self._seed_buy(sleeve, ledger, tracker)
            if trade is not None:
                trades.append(trade)

        trades.extend(self._greedy_fill(eligible, ledger, tracker))
        self.logger.info(
            "Greedy fill complete. Remaining cash by account: %s",
            {account: f"{cash:.2f}" for account, cash in ledger.items()},
        )

        if self.allow_overinvestment and ledger.total() >= CONFIG.MIN_DEPLOYABLE_CASH:
            deployer = CashOverinvestmentDeployer(
                self.checker,
                self.logger,
                max_overinvestment_percent=self.max_overinvestment_percent,
            )
            trades.extend(deployer.deploy(sleeves, trades, ledger))

        cash_trade = self._cash_flow_trade(cash_sleeve, net_trade_value(trades))
        if cash_trade is not None:
            trades.append(cash_trade)

        return consolidate_trades(trades)

    def _seed_from_cash_sleeve(self, cash_sleeve: SleeveAllocation, ledger: CashLedger) -> None:
        """Make the cash sleeve's excess over its own target spendable."""
        remaining = cash_sleeve.current_value - cash_sleeve.target_value
        for position in cash_sleeve.securities:
            if remaining <= 0:
                break
            amount = min(position.market_value, remaining)
            if amount > 0:
                ledger.credit(position.account_id, amount)
                remaining -= amount
        self.logger.debug("Seeded cash ledger: %s", ledger.items())

    def _sell_overweight(
        self,
        sleeve: SleeveAllocation,
        ledger: CashLedger,
        tracker: SleeveValueTracker,
    ) -> list[Trade]:
        excess = tracker.value(sleeve.sleeve_id) - sleeve.target_value
        if excess <= CONFIG.VALUE_TOLERANCE:
            return []

        trades: list[Trade] = []
        remaining = excess

        for sec in reversed(sorted_by_rank(sleeve.securities)):
            if remaining <= CONFIG.VALUE_TOLERANCE or sec.current_qty <= 0:
                continue
            if legacy_sell_blocked(sec, self.checker):
                continue

            qty = self._closest_sell_qty(
                sec, remaining, tracker.value(sleeve.sleeve_id), sleeve.target_value
            )
            if qty <= 0:
                continue

            trade = Trade.sell(sec.account_id, sec.security_id, qty, sec.price)
            proceeds = -trade.est_value
            trades.append(trade)
            ledger.credit(sec.account_id, proceeds)
            tracker.add(sleeve.sleeve_id, trade.est_value)
            remaining -= proceeds
            self.logger.debug(
                "Sell %s from %s: account %s cash now %.2f",
                trade,
                sleeve.sleeve_id,
                sec.account_id,
                ledger.balance(sec.account_id),
            )

        return trades

    @staticmethod
    def _closest_sell_qty(
        sec: SecurityPosition,
        remaining: Decimal,
        sleeve_value: Decimal,
        sleeve_target: Decimal,
    ) -> Decimal:
        """Share count within one of the naive amount that best hits the target."""
        base = whole_shares(min(remaining, sec.market_value), sec.price)
        if base <= 0:
            return Decimal("0")

        options = [base]
        if base + 1 <= sec.current_qty:
            options.append(base + 1)
        if base > 1:
            options.append(base - 1)

        best_qty = base
        best_deviation = abs(sleeve_value - base * sec.price - sleeve_target)
        for qty in options[1:]:
            deviation = abs(sleeve_value - qty * sec.price - sleeve_target)
            if deviation < best_deviation:
                best_qty, best_deviation = qty, deviation
        return best_qty

    def _purchase_option(
        self,
        sleeve: SleeveAllocation,
        ledger: CashLedger,
    ) -> Optional[PurchaseCandidate]:
        """Preferred purchasable security of the sleeve that some account can fund."""
        for sec in sorted_by_rank(sleeve.securities):
            if sec.price <= 0 or not self.checker.is_purchasable(sec.security_id):
                continue
            account_id = ledger.funding_account(sec)
            if account_id is not None:
                return PurchaseCandidate(sleeve.sleeve_id, sec, account_id)
        return None

    def _seed_buy(
        self,
        sleeve: SleeveAllocation,
        ledger: CashLedger,
        tracker: SleeveValueTracker,
    ) -> Optional[Trade]:
        current = tracker.value(sleeve.sleeve_id)
        if current >= sleeve.target_value - CONFIG.VALUE_TOLERANCE:
            return None

        option = self._purchase_option(sleeve, ledger)
        if option is None:
            self.logger.debug("No purchasable security for sleeve %s", sleeve.sleeve_id)
            return None

        deficit = sleeve.target_value - current
        qty = min(
            whole_shares(deficit, option.price),
            whole_shares(ledger.balance(option.account_id), option.price),
        )
        if qty <= 0:
            return None

        trade = Trade.buy(option.account_id, option.position.security_id, qty, option.price)
        ledger.debit(option.account_id, trade.est_value)
        tracker.add(sleeve.sleeve_id, trade.est_value)
        self.logger.debug("Seed buy for %s: %s", sleeve.sleeve_id, trade)
        return trade

    def _greedy_fill(
        self,
        eligible: list[SleeveAllocation],
        ledger: CashLedger,
        tracker: SleeveValueTracker,
    ) -> list[Trade]:
        trades: list[Trade] = []
        among = [s.sleeve_id for s in eligible]

        while ledger.total() >= CONFIG.MIN_DEPLOYABLE_CASH:
            candidates = [
                option
                for option in (self._purchase_option(s, ledger) for s in eligible)
                if option is not None
            ]
            best = select_best_purchase(candidates, tracker, among=among)
            if best is None:
                break

            trade = Trade.buy(best.account_id, best.position.security_id, Decimal("1"), best.price)
            trades.append(trade)
            ledger.debit(best.account_id, best.price)
            tracker.add(best.sleeve_id, best.price)

        self.logger.info(
            "Greedy fill bought %d shares, remaining cash %.2f", len(trades), ledger.total()
        )
        return trades

    def _cash_flow_trade(
        self,
        cash_sleeve: Optional[SleeveAllocation],
        net_value: Decimal,
    ) -> Optional[Trade]:
        """Trade on the cash ticker that mirrors the net cash flow of the other trades."""
        if abs(net_value) <= CONFIG.VALUE_TOLERANCE:
            return None
        if cash_sleeve is None or not cash_sleeve.securities:
            return None

        account_id = cash_sleeve.securities[0].account_id
        if net_value < 0:
            return Trade.buy(account_id, CONFIG.CASH_TICKER, -net_value, Decimal("1"))
        return Trade.sell(account_id, CONFIG.CASH_TICKER, net_value, Decimal("1"))
