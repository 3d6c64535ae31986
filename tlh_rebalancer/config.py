"""Configuration constants for the rebalancing engine."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class RebalanceMethod(Enum):
    """Available rebalance methods."""

    ALLOCATION = "allocation"
    TLH_SWAP = "tlhSwap"
    TLH_REBALANCE = "tlhRebalance"
    INVEST_CASH = "investCash"


@dataclass(frozen=True)
class RebalanceConfig:
    """Identifiers and thresholds shared by every engine."""

    CASH_SLEEVE_ID: str = "cash"
    ORPHAN_SLEEVE_ID: str = "orphan-securities"
    CASH_TICKER: str = "$$$"
    DEFAULT_RANK: int = 999
    WASH_SALE_WINDOW_DAYS: int = 31
    VALUE_TOLERANCE: Decimal = Decimal("0.01")
    QTY_EPSILON: Decimal = Decimal("0.001")
    MIN_DEPLOYABLE_CASH: Decimal = Decimal("1")
    MAX_INVEST_ROUNDS: int = 100
    DEFAULT_MAX_OVERINVESTMENT_PCT: Decimal = Decimal("5.0")


CONFIG = RebalanceConfig()
