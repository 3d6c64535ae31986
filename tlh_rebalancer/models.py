"""Data models for the rebalancing engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from .config import CONFIG

TradeAction = Literal["BUY", "SELL"]


@dataclass
class SecurityPosition:
    """A security held (or targeted) in one account, with its sleeve target weight."""

    security_id: str
    current_qty: Decimal
    target_pct: Decimal
    price: Decimal
    account_id: str
    is_taxable: bool = False
    unrealized_gain: Optional[Decimal] = None
    rank: Optional[int] = None
    is_legacy: bool = False

    @property
    def market_value(self) -> Decimal:
        return self.current_qty * self.price

    @property
    def effective_rank(self) -> int:
        return CONFIG.DEFAULT_RANK if self.rank is None else self.rank

    def with_qty(self, qty: Decimal) -> "SecurityPosition":
        return replace(self, current_qty=qty)


@dataclass
class SleeveAllocation:
    """A group of interchangeable securities sharing one target allocation."""

    sleeve_id: str
    target_value: Decimal
    target_pct: Decimal
    current_value: Decimal
    securities: list[SecurityPosition] = field(default_factory=list)

    @property
    def is_cash(self) -> bool:
        return self.sleeve_id == CONFIG.CASH_SLEEVE_ID

    def holds(self, security_id: str) -> bool:
        return any(sec.security_id == security_id for sec in self.securities)


@dataclass(frozen=True)
class Trade:
    """A proposed order. Quantity and value are negative for sells."""

    account_id: str
    security_id: str
    action: TradeAction
    qty: Decimal
    est_price: Decimal
    est_value: Decimal

    @classmethod
    def buy(cls, account_id: str, security_id: str, qty: Decimal, price: Decimal) -> "Trade":
        return cls(account_id, security_id, "BUY", qty, price, qty * price)

    @classmethod
    def sell(cls, account_id: str, security_id: str, qty: Decimal, price: Decimal) -> "Trade":
        return cls(account_id, security_id, "SELL", -qty, price, -(qty * price))

    def __str__(self) -> str:
        return (
            f"{self.action} {abs(self.qty)} {self.security_id} "
            f"(${abs(self.est_value):.2f} @ ${self.est_price:.2f}, account: {self.account_id})"
        )


@dataclass(frozen=True)
class WashSaleRestriction:
    """A ticker that may not be bought until ``restricted_until``."""

    ticker: str
    restricted_until: datetime
    reason: str = ""


@dataclass(frozen=True)
class SecurityReplacement:
    """Pre-approved swap target used when harvesting a loss."""

    original_ticker: str
    replacement_ticker: str
    rank: Optional[int] = None


@dataclass(frozen=True)
class Transaction:
    """A past execution, used to derive wash-sale restrictions."""

    ticker: str
    type: str
    executed_at: datetime
    realized_gain_loss: Decimal = Decimal("0")
    account_id: Optional[str] = None
    account_type: Optional[str] = None
    account_name: Optional[str] = None
    qty: Decimal = Decimal("0")
    price: Decimal = Decimal("0")

    @property
    def is_taxable_account(self) -> bool:
        if self.account_type == "TAXABLE":
            return True
        return bool(self.account_name) and "taxable" in self.account_name.lower()


@dataclass(frozen=True)
class HoldingPost:
    security_id: str
    qty: Decimal


@dataclass(frozen=True)
class SleeveSummary:
    sleeve_id: str
    trade_qty: Decimal
    trade_usd: Decimal
    post_pct: Decimal


@dataclass(frozen=True)
class RebalanceResult:
    """Everything the caller needs to review a rebalance before submitting it."""

    trades: list[Trade]
    post_holdings: list[HoldingPost]
    sleeves: list[SleeveSummary]
