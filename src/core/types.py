# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Core typed data structures for FactorExpr.

This module defines the lightweight containers shared by the expression
evaluator and everything built on top of it. They store only structural
information and current values; all numerical work happens in
`jax.numpy` inside the expression nodes and the primitives they wrap.

Types
-----
Key
    Identifier of an unknown in the estimation problem. Keys must be hashable
    and totally ordered (ints in practice).

JacobianMap
    Sparse map Key -> Jacobian block. A key is present only if the value
    actually depends on that variable.

Values
    Binding of keys to their current values. Lookup of a missing key raises
    :class:`~factor_expr.core.errors.UnboundVariable`.

tangent_dim(value)
    Dimension of the tangent space a value lives in. Objects that expose a
    ``dim()`` method report it themselves (e.g. ``Rot2``, ``Unit3``); arrays
    and Python scalars are treated as Euclidean with ``dim == size``.

Notes
-----
`Values` is a plain mutable mapping used during setup and between solver
iterations. Expressions never write into it, so a single instance can be
read by several evaluation calls at once.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, MutableMapping, NewType

import jax.numpy as jnp

from .errors import UnboundVariable

Key = NewType("Key", int)

# Type aliases for clarity
JacobianMap = Dict[Key, jnp.ndarray]


def tangent_dim(value: Any) -> int:
    """Tangent-space dimension of ``value``."""
    dim = getattr(value, "dim", None)
    if callable(dim):
        return int(dim())
    return int(jnp.size(value))


class Values(MutableMapping):
    """
    Variable bindings: Key -> value.

    Behaves like a dict, except that ``values[key]`` and :meth:`at` raise
    :class:`UnboundVariable` (a ``KeyError`` subclass) for missing keys, and
    :meth:`insert` refuses to overwrite an existing binding.
    """

    def __init__(self, initial: Mapping[Key, Any] | None = None) -> None:
        self._values: Dict[Key, Any] = {}
        if initial is not None:
            for key, value in initial.items():
                self.insert(key, value)

    def insert(self, key: Key, value: Any) -> None:
        if key in self._values:
            raise ValueError(f"variable {key!r} is already bound")
        self._values[key] = value

    def update_value(self, key: Key, value: Any) -> None:
        """Replace the value of an existing binding."""
        if key not in self._values:
            raise UnboundVariable(key)
        self._values[key] = value

    def at(self, key: Key) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise UnboundVariable(key) from None

    def dims(self) -> Dict[Key, int]:
        """Tangent dimension of every bound variable."""
        return {key: tangent_dim(v) for key, v in self._values.items()}

    def copy(self) -> "Values":
        return Values(self._values)

    # --- MutableMapping protocol ---

    def __getitem__(self, key: Key) -> Any:
        return self.at(key)

    def __setitem__(self, key: Key, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: Key) -> None:
        try:
            del self._values[key]
        except KeyError:
            raise UnboundVariable(key) from None

    def __iter__(self) -> Iterator[Key]:
        return iter(sorted(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k!r}: {self._values[k]!r}" for k in self)
        return f"Values({{{inner}}})"


def lookup(values: Mapping[Key, Any], key: Key) -> Any:
    """Fetch ``key`` from any mapping, raising :class:`UnboundVariable` on a miss."""
    if isinstance(values, Values):
        return values.at(key)
    try:
        return values[key]
    except KeyError:
        raise UnboundVariable(key) from None
