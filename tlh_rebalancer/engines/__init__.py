"""Trade-generation engine implementations."""

from .base import TradeEngine
from .allocation import AllocationRebalancer
from .invest_cash import CashInvestor
from .overinvestment import CashOverinvestmentDeployer
from .search import CashLedger, PurchaseCandidate, SleeveValueTracker, select_best_purchase
from .sleeve_allocation import SleeveAllocationRebalancer
from .tlh import TLHAndRebalanceEngine, TLHSwapEngine, apply_trades_to_positions

__all__ = [
    "TradeEngine",
    "AllocationRebalancer",
    "SleeveAllocationRebalancer",
    "CashOverinvestmentDeployer",
    "TLHSwapEngine",
    "TLHAndRebalanceEngine",
    "CashInvestor",
    "CashLedger",
    "PurchaseCandidate",
    "SleeveValueTracker",
    "select_best_purchase",
    "apply_trades_to_positions",
]
