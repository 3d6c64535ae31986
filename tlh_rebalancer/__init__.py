"""
TLH Rebalancer - Trade generation for sleeve-based portfolio rebalancing and tax-loss harvesting.

Exports:
    rebalance: Run one rebalance and get trades, post holdings and sleeve summaries
    RebalanceOrchestrator: Validates input and dispatches to an engine
    RebalanceMethod: The four supported methods
    SecurityPosition, SleeveAllocation, Trade: Core data model
    RestrictionChecker: Wash-sale restriction lookups
    consolidate_trades: Merge trades per security, account and side
    ValidationError, RebalanceError: Errors raised by the engine
"""

from .config import CONFIG, RebalanceConfig, RebalanceMethod
from .consolidation import consolidate_trades
from .errors import ErrorKind, RebalanceEngineError, RebalanceError, ValidationError
from .models import (
    HoldingPost,
    RebalanceResult,
    SecurityPosition,
    SecurityReplacement,
    SleeveAllocation,
    SleeveSummary,
    Trade,
    Transaction,
    WashSaleRestriction,
)
from .rebalancer import RebalanceOrchestrator, rebalance
from .restrictions import RestrictionChecker

__all__ = [
    "CONFIG",
    "RebalanceConfig",
    "RebalanceMethod",
    "consolidate_trades",
    "ErrorKind",
    "RebalanceEngineError",
    "RebalanceError",
    "ValidationError",
    "HoldingPost",
    "RebalanceResult",
    "SecurityPosition",
    "SecurityReplacement",
    "SleeveAllocation",
    "SleeveSummary",
    "Trade",
    "Transaction",
    "WashSaleRestriction",
    "RebalanceOrchestrator",
    "rebalance",
    "RestrictionChecker",
]
