"""Deployment of leftover cash beyond sleeve targets, within a cap."""

import logging
from decimal import Decimal
from typing import Optional

from ..config import CONFIG
from ..models import SleeveAllocation, Trade
from ..restrictions import RestrictionChecker
from .search import CashLedger, PurchaseCandidate, SleeveValueTracker, select_best_purchase


class CashOverinvestmentDeployer:
    """Spend residual cash one share at a time, allowing sleeves to overshoot.

    Each purchase must keep its sleeve within ``max_overinvestment_percent``
    above target, and only the security's own account may pay for it.
    Candidates are scored by the total squared percentage deviation of all
    eligible sleeves.
    """

    def __init__(
        self,
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
        max_overinvestment_percent: Decimal = CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT,
    ) -> None:
        self.checker = checker or RestrictionChecker()
        self.logger = logger or logging.getLogger(__name__)
        self.max_overinvestment_percent = Decimal(max_overinvestment_percent)

    def deploy(
        self,
        sleeves: list[SleeveAllocation],
        existing_trades: list[Trade],
        ledger: CashLedger,
    ) -> list[Trade]:
        trades: list[Trade] = []

        if ledger.total() < CONFIG.MIN_DEPLOYABLE_CASH:
            self.logger.info("Less than $1 remaining cash, skipping overinvestment deployment")
            return trades

        eligible = [
            s
            for s in sleeves
            if not s.is_cash and s.securities and s.target_value > 0
        ]
        if not eligible:
            return trades

        self.logger.info(
            "Deploying %.2f remaining cash with max %s%% overinvestment",
            ledger.total(),
            self.max_overinvestment_percent,
        )

        tracker = SleeveValueTracker()
        for sleeve in eligible:
            value = sleeve.current_value + sum(
                (t.est_value for t in existing_trades if sleeve.holds(t.security_id)),
                start=Decimal("0"),
            )
            tracker.track(sleeve.sleeve_id, value, sleeve.target_value)

        while ledger.total() >= CONFIG.MIN_DEPLOYABLE_CASH:
            candidates = [
                c for c in (self._candidate(s, ledger, tracker) for s in eligible) if c is not None
            ]
            best = select_best_purchase(candidates, tracker, relative=True)
            if best is None:
                self.logger.info("No valid purchases remaining within overinvestment limits")
                break

            trade = Trade.buy(best.account_id, best.position.security_id, Decimal("1"), best.price)
            trades.append(trade)
            ledger.debit(best.account_id, best.price)
            tracker.add(best.sleeve_id, best.price)
            self.logger.debug("Overinvestment buy %s (deviation score %.2f)", trade, best.score)

        self.logger.info(
            "Cash deployment complete. Remaining: %.2f, additional trades: %d",
            ledger.total(),
            len(trades),
        )
        return trades

    def _candidate(
        self,
        sleeve: SleeveAllocation,
        ledger: CashLedger,
        tracker: SleeveValueTracker,
    ) -> Optional[PurchaseCandidate]:
        position = self.checker.lowest_ranked_purchasable(
            (sec for sec in sleeve.securities if sec.price > 0), require_positive_target=True
        )
        if position is None:
            return None
        if ledger.balance(position.account_id) < position.price:
            return None

        value_after = tracker.value(sleeve.sleeve_id) + position.price
        overinvestment = (value_after - sleeve.target_value) / sleeve.target_value * 100
        if overinvestment > self.max_overinvestment_percent:
            return None

        return PurchaseCandidate(sleeve.sleeve_id, position, position.account_id)
