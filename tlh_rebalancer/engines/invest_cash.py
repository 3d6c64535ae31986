"""Round-robin deployment of a fresh cash injection."""

import logging
from decimal import Decimal
from typing import Optional

import numpy as np

from ..config import CONFIG
from ..consolidation import consolidate_trades
from ..models import SecurityPosition, SleeveAllocation, Trade
from ..restrictions import RestrictionChecker
from .base import TradeEngine
from .search import SleeveValueTracker


class CashInvestor(TradeEngine):
    """Invest ``cash_amount`` across underweight sleeves without selling.

    Each investable sleeve contributes its preferred purchasable security. The
    securities are visited cheapest first, and every round buys one share of
    each one still affordable, until a round buys nothing or the round limit
    is reached.
    """

    def __init__(
        self,
        cash_amount: Decimal,
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(checker, logger)
        self.cash_amount = Decimal(cash_amount)

    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        if self.cash_amount <= 0:
            return []

        investable = [
            s
            for s in sleeves
            if s.sleeve_id not in (CONFIG.CASH_SLEEVE_ID, CONFIG.ORPHAN_SLEEVE_ID)
            and s.target_pct > 0
            and s.securities
        ]
        if not investable:
            return []

        self._log_deficits(investable)

        picks: list[tuple[SleeveAllocation, SecurityPosition]] = []
        for sleeve in investable:
            security = self.checker.lowest_ranked_purchasable(
                sec for sec in sleeve.securities if sec.price > 0
            )
            if security is not None:
                picks.append((sleeve, security))
        picks.sort(key=lambda pick: pick[1].price)

        tracker = SleeveValueTracker(investable)
        trades: list[Trade] = []
        remaining = self.cash_amount
        rounds = 0

        while remaining > 0 and rounds < CONFIG.MAX_INVEST_ROUNDS:
            rounds += 1
            bought = 0
            for sleeve, security in picks:
                if remaining < security.price:
                    continue
                trade = Trade.buy(
                    security.account_id, security.security_id, Decimal("1"), security.price
                )
                trades.append(trade)
                tracker.add(sleeve.sleeve_id, security.price)
                remaining -= security.price
                bought += 1

            if bought == 0:
                self.logger.debug("No affordable securities in round %d, stopping", rounds)
                break

        self._log_fill_ratios(investable, tracker)
        self.logger.info(
            "Invested %.2f of %.2f in %d purchases over %d rounds",
            self.cash_amount - remaining,
            self.cash_amount,
            len(trades),
            rounds,
        )
        return consolidate_trades(trades)

    def _log_deficits(self, sleeves: list[SleeveAllocation]) -> None:
        """Log each sleeve's shortfall against its post-injection target."""
        current_total = sum((s.current_value for s in sleeves), start=Decimal("0"))
        new_total = current_total + self.cash_amount

        deficits = []
        for sleeve in sleeves:
            target = sleeve.target_pct / 100 * new_total
            deficits.append((sleeve.sleeve_id, max(Decimal("0"), target - sleeve.current_value)))
        deficits.sort(key=lambda item: item[1], reverse=True)

        total_deficit = sum((d for _, d in deficits), start=Decimal("0"))
        self.logger.info(
            "Investing %.2f across %d sleeves, total deficit %.2f",
            self.cash_amount,
            len(sleeves),
            total_deficit,
        )
        self.logger.debug("Sleeve deficits: %s", [(s, f"{d:.2f}") for s, d in deficits])

    def _log_fill_ratios(
        self, sleeves: list[SleeveAllocation], tracker: SleeveValueTracker
    ) -> None:
        ratios = np.array(
            [
                float(tracker.value(s.sleeve_id) / s.target_value) if s.target_value > 0 else 0.0
                for s in sleeves
            ]
        )
        self.logger.debug(
            "Fill ratio stats - avg: %.3f, std dev: %.3f", ratios.mean(), ratios.std()
        )
