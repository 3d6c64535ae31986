"""Wash-sale restriction checks.

A ticker is restricted when an explicit restriction record covers it, or when
it was sold at a loss in a taxable account within the wash-sale window. A
restricted ticker may still be sold; only buys are blocked.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, TypeVar

from .config import CONFIG
from .models import SecurityPosition, TradeAction, Transaction, WashSaleRestriction

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=SecurityPosition)


@dataclass(frozen=True)
class RestrictionCheckResult:
    is_restricted: bool
    reason: Optional[str] = None
    restriction: Optional[WashSaleRestriction] = None


@dataclass(frozen=True)
class TradeValidation:
    is_allowed: bool
    reason: Optional[str] = None


def as_utc(value: datetime) -> datetime:
    """Naive UTC datetime. Naive input is taken to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def wash_sale_from_transactions(
    ticker: str,
    transactions: Sequence[Transaction],
    as_of: datetime,
) -> Optional[WashSaleRestriction]:
    """Derive a restriction for ``ticker`` from recent loss sales, if any.

    Only SELL transactions in taxable accounts with a realized loss inside the
    window count. The most recent one sets the end of the restriction.
    """
    window = timedelta(days=CONFIG.WASH_SALE_WINDOW_DAYS)
    as_of = as_utc(as_of)
    cutoff = as_of - window

    loss_sells = [
        tx
        for tx in transactions
        if tx.ticker == ticker
        and tx.type == "SELL"
        and as_utc(tx.executed_at) >= cutoff
        and tx.is_taxable_account
        and tx.realized_gain_loss < 0
    ]
    if not loss_sells:
        return None

    latest = max(loss_sells, key=lambda tx: as_utc(tx.executed_at))
    executed_at = as_utc(latest.executed_at)
    days_ago = (as_of - executed_at).days
    days_remaining = CONFIG.WASH_SALE_WINDOW_DAYS - days_ago

    return WashSaleRestriction(
        ticker=ticker,
        restricted_until=executed_at + window,
        reason=(
            f"Tax loss harvested on {executed_at.date().isoformat()}, "
            f"{days_remaining} days remaining"
        ),
    )


class RestrictionChecker:
    """Answers whether tickers are currently wash-sale restricted.

    Built once per rebalance from the explicit restriction list and the recent
    transaction history. Explicit restrictions take precedence over ones
    derived from transactions, and only restrictions still active at
    ``as_of`` are kept.
    """

    def __init__(
        self,
        restrictions: Iterable[WashSaleRestriction] = (),
        transactions: Iterable[Transaction] = (),
        as_of: Optional[datetime] = None,
    ) -> None:
        self.as_of = as_utc(as_of or datetime.now(timezone.utc))
        explicit = list(restrictions)
        transactions = list(transactions)

        combined: list[WashSaleRestriction] = list(explicit)
        explicit_tickers = {r.ticker for r in explicit}
        seen: set[str] = set()

        for tx in transactions:
            if tx.ticker in seen:
                continue
            seen.add(tx.ticker)
            derived = wash_sale_from_transactions(tx.ticker, transactions, self.as_of)
            if derived is not None and tx.ticker not in explicit_tickers:
                logger.debug("Wash sale derived for %s: %s", tx.ticker, derived.reason)
                combined.append(derived)

        self._restrictions: dict[str, WashSaleRestriction] = {}
        for restriction in combined:
            if self.as_of <= as_utc(restriction.restricted_until):
                self._restrictions.setdefault(restriction.ticker, restriction)

        if self._restrictions:
            logger.info(
                "Wash sale restricted securities: %s", ", ".join(self._restrictions)
            )

    def is_restricted(self, ticker: str) -> RestrictionCheckResult:
        restriction = self._restrictions.get(ticker)
        if restriction is None:
            return RestrictionCheckResult(is_restricted=False)
        return RestrictionCheckResult(
            is_restricted=True,
            reason=restriction.reason or "Wash sale restriction",
            restriction=restriction,
        )

    def is_purchasable(self, ticker: str) -> bool:
        return ticker not in self._restrictions

    def restricted_tickers(self) -> set[str]:
        return set(self._restrictions)

    def all_restrictions(self) -> list[WashSaleRestriction]:
        return list(self._restrictions.values())

    def validate_trade(self, ticker: str, action: TradeAction) -> TradeValidation:
        if action == "BUY" and not self.is_purchasable(ticker):
            logger.debug("Blocked BUY of %s: wash sale restriction", ticker)
            return TradeValidation(
                is_allowed=False,
                reason=f"Wash sale restriction prevents buying {ticker}",
            )
        return TradeValidation(is_allowed=True)

    def filter_purchasable(self, securities: Iterable[P]) -> list[P]:
        return [sec for sec in securities if self.is_purchasable(sec.security_id)]

    def lowest_ranked_purchasable(
        self,
        securities: Iterable[P],
        require_positive_target: bool = False,
    ) -> Optional[P]:
        """Return the preferred (lowest rank) security that may be bought."""
        for sec in sorted_by_rank(securities):
            if not self.is_purchasable(sec.security_id):
                continue
            if require_positive_target and sec.target_pct <= 0:
                continue
            return sec
        return None


def sorted_by_rank(securities: Iterable[P]) -> list[P]:
    """Securities ordered by preference; the sort is stable for equal ranks."""
    return sorted(securities, key=lambda sec: sec.effective_rank)


def legacy_sell_blocked(position: SecurityPosition, checker: RestrictionChecker) -> bool:
    """True when a grandfathered position must not be sold.

    A legacy position is kept when it is restricted or when selling it would
    realize a taxable gain. Either condition alone is enough.
    """
    if not position.is_legacy:
        return False

    restricted = not checker.is_purchasable(position.security_id)
    taxable_gain = (
        position.is_taxable
        and position.unrealized_gain is not None
        and position.unrealized_gain > 0
    )
    if restricted or taxable_gain:
        logger.info(
            "Skipping legacy security %s - restricted: %s, taxable gain: %s",
            position.security_id,
            restricted,
            taxable_gain,
        )
        return True
    return False
