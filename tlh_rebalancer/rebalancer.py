"""Entry point: validates a rebalance request and dispatches to an engine."""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from .config import CONFIG, RebalanceMethod
from .engines import (
    CashInvestor,
    SleeveAllocationRebalancer,
    TLHAndRebalanceEngine,
    TLHSwapEngine,
    TradeEngine,
)
from .errors import RebalanceError, ValidationError
from .models import (
    RebalanceResult,
    SecurityReplacement,
    SleeveAllocation,
    Transaction,
    WashSaleRestriction,
)
from .restrictions import RestrictionChecker
from .summary import calculate_post_holdings, calculate_sleeve_summaries

logger = logging.getLogger(__name__)


class RebalanceOrchestrator:
    """Runs one rebalance for one portfolio snapshot.

    The orchestrator holds no state between calls, so one instance can serve
    concurrent callers as long as each passes its own sleeve snapshot.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def rebalance(
        self,
        portfolio_id: str,
        method: Union[RebalanceMethod, str],
        sleeves: list[SleeveAllocation],
        wash_sale_restrictions: Iterable[WashSaleRestriction] = (),
        replacement_candidates: Iterable[SecurityReplacement] = (),
        allow_overinvestment: bool = False,
        max_overinvestment_percent: Decimal = CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT,
        transactions: Iterable[Transaction] = (),
        cash_amount: Optional[Decimal] = None,
        price_lookup: Optional[dict[str, Decimal]] = None,
        as_of: Optional[datetime] = None,
    ) -> RebalanceResult:
        """Compute trades, post-trade holdings and sleeve summaries.

        Args:
            portfolio_id: Identifier used in logs and errors.
            method: One of "allocation", "tlhSwap", "tlhRebalance", "investCash".
            sleeves: Sleeve snapshot, including the "cash" sleeve when present.
            wash_sale_restrictions: Explicit buy restrictions.
            replacement_candidates: Approved swaps for tax-loss harvesting.
            allow_overinvestment: Let leftover cash push sleeves past target.
            max_overinvestment_percent: Cap on overshoot, 0-100.
            transactions: Recent executions used to derive wash-sale restrictions.
            cash_amount: Cash to invest; required for "investCash".
            price_lookup: Prices for replacement securities not in any sleeve.
            as_of: Reference time for restriction windows (defaults to now).

        Raises:
            ValidationError: Input is missing or out of range.
            RebalanceError: Any other failure while computing trades.
        """
        sleeves = list(sleeves or [])
        context = {
            "portfolio_id": portfolio_id,
            "method": getattr(method, "value", method),
            "sleeves_count": len(sleeves),
            "cash_amount": cash_amount,
        }

        try:
            resolved, percent = self._validate(
                portfolio_id, method, sleeves, max_overinvestment_percent, cash_amount
            )
            self.logger.info(
                "Starting rebalance for portfolio %s: method=%s sleeves=%d "
                "allow_overinvestment=%s max_overinvestment=%s cash=%s",
                portfolio_id,
                resolved.value,
                len(sleeves),
                allow_overinvestment,
                percent,
                cash_amount,
            )

            checker = RestrictionChecker(wash_sale_restrictions, transactions, as_of=as_of)
            engine = self._build_engine(
                resolved,
                checker,
                replacement_candidates=replacement_candidates,
                allow_overinvestment=allow_overinvestment,
                max_overinvestment_percent=percent,
                cash_amount=cash_amount,
                price_lookup=price_lookup,
            )
            trades = engine.calculate_trades(sleeves)

            post_holdings = calculate_post_holdings(sleeves, trades)
            summaries = calculate_sleeve_summaries(sleeves, trades, post_holdings)

            self.logger.info(
                "Rebalance completed for portfolio %s: %d trades, gross value %.2f",
                portfolio_id,
                len(trades),
                sum((abs(t.est_value) for t in trades), start=Decimal("0")),
            )
            return RebalanceResult(trades=trades, post_holdings=post_holdings, sleeves=summaries)

        except ValidationError as e:
            self.logger.error("Rebalance validation failed: %s %s", e, context)
            raise
        except Exception as e:
            self.logger.exception("Rebalance execution failed %s", context)
            raise RebalanceError("Failed to execute rebalance", portfolio_id, e) from e

    def _validate(
        self,
        portfolio_id: str,
        method: Union[RebalanceMethod, str],
        sleeves: list[SleeveAllocation],
        max_overinvestment_percent: Decimal,
        cash_amount: Optional[Decimal],
    ) -> tuple[RebalanceMethod, Decimal]:
        if not portfolio_id or not portfolio_id.strip():
            raise ValidationError("Portfolio ID is required", "portfolioId")

        if not sleeves:
            raise ValidationError("At least one sleeve is required", "sleeves")

        for sleeve in sleeves:
            for sec in sleeve.securities:
                if sec.price <= 0:
                    raise ValidationError(
                        f"Price must be positive for {sec.security_id} "
                        f"in sleeve {sleeve.sleeve_id}",
                        "price",
                    )

        try:
            percent = Decimal(str(max_overinvestment_percent))
        except (InvalidOperation, ValueError):
            percent = None
        if percent is None or not percent.is_finite() or not 0 <= percent <= 100:
            raise ValidationError(
                "Overinvestment percentage must be between 0 and 100",
                "maxOverinvestmentPercent",
            )

        try:
            resolved = RebalanceMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown rebalance method: {method}", "method") from None

        if resolved is RebalanceMethod.INVEST_CASH and (not cash_amount or cash_amount <= 0):
            raise ValidationError(
                "Cash amount must be positive for investCash method", "cashAmount"
            )

        return resolved, percent

    def _build_engine(
        self,
        method: RebalanceMethod,
        checker: RestrictionChecker,
        replacement_candidates: Iterable[SecurityReplacement],
        allow_overinvestment: bool,
        max_overinvestment_percent: Decimal,
        cash_amount: Optional[Decimal],
        price_lookup: Optional[dict[str, Decimal]],
    ) -> TradeEngine:
        engines = {
            RebalanceMethod.ALLOCATION: lambda: SleeveAllocationRebalancer(
                checker,
                self.logger,
                allow_overinvestment=allow_overinvestment,
                max_overinvestment_percent=max_overinvestment_percent,
            ),
            RebalanceMethod.TLH_SWAP: lambda: TLHSwapEngine(
                replacement_candidates, checker, self.logger, price_lookup
            ),
            RebalanceMethod.TLH_REBALANCE: lambda: TLHAndRebalanceEngine(
                replacement_candidates, checker, self.logger, price_lookup
            ),
            RebalanceMethod.INVEST_CASH: lambda: CashInvestor(
                cash_amount or Decimal("0"), checker, self.logger
            ),
        }
        return engines[method]()


def rebalance(
    portfolio_id: str,
    method: Union[RebalanceMethod, str],
    sleeves: list[SleeveAllocation],
    wash_sale_restrictions: Iterable[WashSaleRestriction] = (),
    replacement_candidates: Iterable[SecurityReplacement] = (),
    allow_overinvestment: bool = False,
    max_overinvestment_percent: Decimal = CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT,
    transactions: Iterable[Transaction] = (),
    cash_amount: Optional[Decimal] = None,
    price_lookup: Optional[dict[str, Decimal]] = None,
    as_of: Optional[datetime] = None,
) -> RebalanceResult:
    """Run a rebalance with a default orchestrator. See RebalanceOrchestrator.rebalance."""
    return RebalanceOrchestrator().rebalance(
        portfolio_id,
        method,
        sleeves,
        wash_sale_restrictions=wash_sale_restrictions,
        replacement_candidates=replacement_candidates,
        allow_overinvestment=allow_overinvestment,
        max_overinvestment_percent=max_overinvestment_percent,
        transactions=transactions,
        cash_amount=cash_amount,
        price_lookup=price_lookup,
        as_of=as_of,
    )
