"""Loaders for rebalance requests stored as JSON."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from .config import CONFIG
from .models import (
    SecurityPosition,
    SecurityReplacement,
    SleeveAllocation,
    Transaction,
    WashSaleRestriction,
)
from .restrictions import as_utc


@dataclass
class RebalanceRequest:
    """Arguments for ``rebalance`` as read from a request file."""

    portfolio_id: str
    method: str
    sleeves: list[SleeveAllocation]
    wash_sale_restrictions: list[WashSaleRestriction] = field(default_factory=list)
    replacement_candidates: list[SecurityReplacement] = field(default_factory=list)
    allow_overinvestment: bool = False
    max_overinvestment_percent: Decimal = CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT
    transactions: list[Transaction] = field(default_factory=list)
    cash_amount: Optional[Decimal] = None
    price_lookup: dict[str, Decimal] = field(default_factory=dict)
    as_of: Optional[datetime] = None

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "portfolio_id": self.portfolio_id,
            "method": self.method,
            "sleeves": self.sleeves,
            "wash_sale_restrictions": self.wash_sale_restrictions,
            "replacement_candidates": self.replacement_candidates,
            "allow_overinvestment": self.allow_overinvestment,
            "max_overinvestment_percent": self.max_overinvestment_percent,
            "transactions": self.transactions,
            "cash_amount": self.cash_amount,
            "price_lookup": self.price_lookup,
            "as_of": self.as_of,
        }


def load_rebalance_request(path: Union[str, Path]) -> RebalanceRequest:
    """Load a rebalance request from a JSON file.

    Args:
        path: Path to a JSON document shaped like the keyword arguments of
            ``rebalance`` (camelCase keys).

    Returns:
        Parsed RebalanceRequest.

    Raises:
        ValueError: If a required field is missing or malformed.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return parse_rebalance_request(data)


def parse_rebalance_request(data: dict[str, Any]) -> RebalanceRequest:
    """Build a RebalanceRequest from already-decoded JSON.

    Example:
        >>> request = parse_rebalance_request({
        ...     "portfolioId": "p1",
        ...     "method": "allocation",
        ...     "sleeves": [],
        ... })
        >>> request.method
        'allocation'
    """
    try:
        cash_amount = data.get("cashAmount")
        as_of = data.get("asOf")
        return RebalanceRequest(
            portfolio_id=data.get("portfolioId", ""),
            method=data["method"],
            sleeves=[_parse_sleeve(s) for s in data.get("sleeves", [])],
            wash_sale_restrictions=[
                WashSaleRestriction(
                    ticker=r["ticker"],
                    restricted_until=_datetime(r["restrictedUntil"]),
                    reason=r.get("reason", ""),
                )
                for r in data.get("washSaleRestrictions", [])
            ],
            replacement_candidates=[
                SecurityReplacement(
                    original_ticker=r["originalTicker"],
                    replacement_ticker=r["replacementTicker"],
                    rank=r.get("rank"),
                )
                for r in data.get("replacementCandidates", [])
            ],
            allow_overinvestment=bool(data.get("allowOverinvestment", False)),
            max_overinvestment_percent=_decimal(
                data.get("maxOverinvestmentPercent", CONFIG.DEFAULT_MAX_OVERINVESTMENT_PCT)
            ),
            transactions=[_parse_transaction(t) for t in data.get("transactions", [])],
            cash_amount=None if cash_amount is None else _decimal(cash_amount),
            price_lookup={k: _decimal(v) for k, v in data.get("priceLookup", {}).items()},
            as_of=None if as_of is None else _datetime(as_of),
        )
    except KeyError as e:
        raise ValueError(f"Missing required field in rebalance request: {e}") from e


def _parse_sleeve(data: dict[str, Any]) -> SleeveAllocation:
    return SleeveAllocation(
        sleeve_id=data["sleeveId"],
        target_value=_decimal(data.get("targetValue", 0)),
        target_pct=_decimal(data.get("targetPct", 0)),
        current_value=_decimal(data.get("currentValue", 0)),
        securities=[_parse_position(p) for p in data.get("securities", [])],
    )


def _parse_position(data: dict[str, Any]) -> SecurityPosition:
    gain = data.get("unrealizedGain")
    return SecurityPosition(
        security_id=data["securityId"],
        current_qty=_decimal(data.get("currentQty", 0)),
        target_pct=_decimal(data.get("targetPct", 0)),
        price=_decimal(data["price"]),
        account_id=data["accountId"],
        is_taxable=bool(data.get("isTaxable", False)),
        unrealized_gain=None if gain is None else _decimal(gain),
        rank=data.get("rank"),
        is_legacy=bool(data.get("isLegacy", False)),
    )


def _parse_transaction(data: dict[str, Any]) -> Transaction:
    return Transaction(
        ticker=data["ticker"],
        type=data["type"],
        executed_at=_datetime(data["executedAt"]),
        realized_gain_loss=_decimal(data.get("realizedGainLoss", 0)),
        account_id=data.get("accountId"),
        account_type=data.get("accountType"),
        account_name=data.get("accountName"),
        qty=_decimal(data.get("qty", 0)),
        price=_decimal(data.get("price", 0)),
    )


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def _datetime(value: str) -> datetime:
    """ISO-8601 timestamp as naive UTC. A trailing ``Z`` means UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))
