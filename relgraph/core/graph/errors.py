"""Error types raised while resolving and executing graph inserts."""

from __future__ import annotations

from typing import Any, Optional, Type

from ..validated_model import ValidationError


class ResolutionError(ValueError):
    """Raised when `#id` / `#ref` markers cannot be resolved into a valid graph.

    Covers dangling references, ambiguous duplicate identifiers, references to
    unknown columns and dependency cycles. Raised before any SQL runs.

    Attributes:
        symbol: Symbolic identifier involved in the failure, when there is one.
    """

    def __init__(self, message: str, *, symbol: Optional[str] = None) -> None:
        self.symbol = symbol
        super().__init__(message)


class StorageError(RuntimeError):
    """Raised when the database rejects an insert; the transaction was rolled back.

    The driver exception is available as `__cause__`.
    """

    def __init__(self, message: str, *, model: Optional[Type[Any]] = None) -> None:
        self.model = model
        super().__init__(message)


__all__ = ["ResolutionError", "StorageError", "ValidationError"]
