"""Error taxonomy for the rebalancing engine.

Every error carries a ``kind`` so callers can branch on it without
importing the concrete classes::

    try:
        result = rebalance(...)
    except RebalanceEngineError as err:
        if err.kind is ErrorKind.VALIDATION:
            ...
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    VALIDATION = "validation"
    REBALANCE = "rebalance"


class RebalanceEngineError(Exception):
    """Base class for errors raised by the engine."""

    kind: ErrorKind = ErrorKind.REBALANCE


class ValidationError(RebalanceEngineError, ValueError):
    """Bad or missing input. Never retried and never wrapped."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class RebalanceError(RebalanceEngineError):
    """Unexpected failure while computing trades for a portfolio."""

    kind = ErrorKind.REBALANCE

    def __init__(
        self,
        message: str,
        portfolio_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.portfolio_id = portfolio_id
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is None:
            return f"{base} (portfolio: {self.portfolio_id})"
        return f"{base} (portfolio: {self.portfolio_id}): {self.cause}"
