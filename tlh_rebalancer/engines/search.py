"""One-share lookahead search shared by the sleeve-based engines.

The search evaluates, for every candidate purchase, the total squared deviation
of all tracked sleeves from their targets after buying one share, and picks the
candidate with the smallest total. Exact ties go to the first candidate.

    score(c) = sum_s (value[s] + price(c) * [s == sleeve(c)] - target[s]) ** 2

With ``relative=True`` each deviation is expressed as a percentage of the
sleeve's target value instead of dollars.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, Optional, Sequence

import numpy as np

from ..models import SecurityPosition, SleeveAllocation


@dataclass(frozen=True)
class PurchaseCandidate:
    """A possible one-share buy of ``position`` funded from ``account_id``."""

    sleeve_id: str
    position: SecurityPosition
    account_id: str
    score: float = 0.0

    @property
    def price(self) -> Decimal:
        return self.position.price


class CashLedger:
    """Cash available for purchases, tracked per account."""

    def __init__(self) -> None:
        self._balances: dict[str, Decimal] = {}

    def credit(self, account_id: str, amount: Decimal) -> None:
        self._balances[account_id] = self.balance(account_id) + amount

    def debit(self, account_id: str, amount: Decimal) -> None:
        self._balances[account_id] = self.balance(account_id) - amount

    def balance(self, account_id: str) -> Decimal:
        return self._balances.get(account_id, Decimal("0"))

    def total(self) -> Decimal:
        """Sum of positive balances."""
        return sum(
            (max(Decimal("0"), cash) for cash in self._balances.values()),
            start=Decimal("0"),
        )

    def funding_account(self, position: SecurityPosition) -> Optional[str]:
        """Account able to pay for one share, preferring the position's own."""
        if self.balance(position.account_id) >= position.price:
            return position.account_id
        for account_id, cash in self._balances.items():
            if cash >= position.price:
                return account_id
        return None

    def items(self) -> list[tuple[str, Decimal]]:
        return list(self._balances.items())


class SleeveValueTracker:
    """Running sleeve values during a single rebalance."""

    def __init__(self, sleeves: Iterable[SleeveAllocation] = ()) -> None:
        self._values: dict[str, Decimal] = {}
        self._targets: dict[str, Decimal] = {}
        for sleeve in sleeves:
            self.track(sleeve.sleeve_id, sleeve.current_value, sleeve.target_value)

    def track(self, sleeve_id: str, value: Decimal, target: Decimal) -> None:
        self._values[sleeve_id] = value
        self._targets[sleeve_id] = target

    def value(self, sleeve_id: str) -> Decimal:
        return self._values[sleeve_id]

    def add(self, sleeve_id: str, amount: Decimal) -> None:
        self._values[sleeve_id] += amount

    def sleeve_ids(self) -> list[str]:
        return list(self._values)

    def squared_deviation_after(
        self,
        sleeve_ids: Sequence[str],
        amounts: Sequence[Decimal],
        among: Optional[Sequence[str]] = None,
        relative: bool = False,
    ) -> np.ndarray:
        """Total squared deviation after adding ``amounts[i]`` to ``sleeve_ids[i]``.

        Returns one score per (sleeve, amount) pair. ``among`` limits the sum to
        a subset of the tracked sleeves.
        """
        columns = list(among) if among is not None else self.sleeve_ids()
        index = {sleeve_id: i for i, sleeve_id in enumerate(columns)}

        current = np.array([float(self._values[s]) for s in columns])
        target = np.array([float(self._targets[s]) for s in columns])

        after = np.tile(current, (len(sleeve_ids), 1))
        rows = np.arange(len(sleeve_ids))
        cols = np.array([index[s] for s in sleeve_ids], dtype=int)
        after[rows, cols] += np.array([float(a) for a in amounts])

        deviation = after - target
        if relative:
            deviation = deviation / target * 100.0
        return np.square(deviation).sum(axis=1)


def select_best_purchase(
    candidates: Sequence[PurchaseCandidate],
    tracker: SleeveValueTracker,
    among: Optional[Sequence[str]] = None,
    relative: bool = False,
) -> Optional[PurchaseCandidate]:
    """Pick the one-share buy that leaves the smallest total squared deviation."""
    if not candidates:
        return None

    scores = tracker.squared_deviation_after(
        [c.sleeve_id for c in candidates],
        [c.price for c in candidates],
        among=among,
        relative=relative,
    )
    best = int(np.argmin(scores))
    return replace(candidates[best], score=float(scores[best]))
