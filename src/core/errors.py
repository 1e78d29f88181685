# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""Error types raised while building or evaluating expressions."""

from __future__ import annotations

from typing import Any, Hashable, Tuple


class ExpressionError(Exception):
    """Base class for FactorExpr errors."""


class UnboundVariable(ExpressionError, KeyError):
    """A leaf asked for a key that is missing from the bindings."""

    def __init__(self, key: Hashable) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"no value bound for variable {self.key!r}"


class DimensionMismatch(ExpressionError, ValueError):
    """A Jacobian block does not have the shape its position requires."""

    def __init__(
        self,
        message: str,
        expected: Tuple[Any, ...] | None = None,
        actual: Tuple[Any, ...] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        if self.expected is None and self.actual is None:
            return self.message
        return f"{self.message} (expected {self.expected}, got {self.actual})"


class MalformedGraph(ExpressionError, TypeError):
    """An expression was built from something that is not a finished graph,
    or a primitive answered with the wrong result shape."""
