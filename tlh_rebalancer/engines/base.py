"""Abstract base class for trade-generation engines."""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from ..models import SecurityPosition, SleeveAllocation, Trade
from ..restrictions import RestrictionChecker


class TradeEngine(ABC):
    """Turns a sleeve snapshot into a list of proposed trades."""

    def __init__(
        self,
        checker: Optional[RestrictionChecker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.checker = checker or RestrictionChecker()
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def calculate_trades(self, sleeves: list[SleeveAllocation]) -> list[Trade]:
        """Calculate trades for the given sleeves.

        Args:
            sleeves: Sleeve snapshot, including the cash sleeve when present.

        Returns:
            Consolidated list of trades.
        """
        pass


def flatten_positions(sleeves: list[SleeveAllocation]) -> list[SecurityPosition]:
    return [sec for sleeve in sleeves for sec in sleeve.securities]


def whole_shares(value: Decimal, price: Decimal) -> Decimal:
    """Number of whole shares ``value`` buys at ``price``."""
    if price <= 0 or value <= 0:
        return Decimal("0")
    return (value / price).to_integral_value(rounding=ROUND_FLOOR)
