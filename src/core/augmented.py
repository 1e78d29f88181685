# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Values augmented with their sparse Jacobians.

An :class:`Augmented` pairs the result of evaluating an expression with a
:data:`JacobianMap` holding d(result)/d(variable) for every variable the
result depends on. Nodes build their Augmented result from the Augmented
results of their children with :func:`merge`, which implements the chain
rule as a sparse block accumulation:

    target[k] = H · M          if k is not yet in target
    target[k] = target[k] + H · M   otherwise

for every (k, M) contributed by a child whose local Jacobian is H.

Because accumulation is plain addition, the result does not depend on the
order in which children (or repeated visits of a shared sub-expression) are
merged. Two parents sharing a descendant variable therefore always observe
the combined sensitivity.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, Optional, Tuple

import jax.numpy as jnp

from .errors import DimensionMismatch
from .types import JacobianMap, Key, tangent_dim


def _as_matrix(H: Any, out_dim: int) -> jnp.ndarray:
    H = jnp.asarray(H)
    if H.ndim == 0 and out_dim == 1:
        # scalar function of a scalar argument
        return jnp.reshape(H, (1, 1))
    if H.ndim != 2:
        raise DimensionMismatch("local Jacobian must be a matrix", (out_dim, "cols"), H.shape)
    return H


def merge(target: JacobianMap, H: Any, terms: JacobianMap, out_dim: int) -> None:
    """
    Accumulate ``H · M`` into ``target`` for every ``(key, M)`` in ``terms``.

    ``out_dim`` is the tangent dimension of the value that owns ``target``;
    every block stored under a key must have ``out_dim`` rows.

    Raises:
        DimensionMismatch: if ``H`` cannot pre-multiply a term, if it does not
            produce ``out_dim`` rows, or if a product disagrees with the block
            already stored for the same key.
    """
    if not terms:
        return
    H = _as_matrix(H, out_dim)
    if H.shape[0] != out_dim:
        raise DimensionMismatch(
            "local Jacobian rows must match the output dimension",
            (out_dim, H.shape[1]),
            H.shape,
        )
    for key, M in terms.items():
        if H.shape[1] != M.shape[0]:
            raise DimensionMismatch(
                f"local Jacobian columns must match the argument dimension for variable {key!r}",
                (out_dim, M.shape[0]),
                H.shape,
            )
        contribution = H @ M
        existing = target.get(key)
        if existing is None:
            target[key] = contribution
        elif existing.shape != contribution.shape:
            raise DimensionMismatch(
                f"conflicting Jacobian shapes for variable {key!r}",
                existing.shape,
                contribution.shape,
            )
        else:
            target[key] = existing + contribution


class Augmented:
    """
    A value together with its Jacobians.

    Instances are created fresh by each evaluation call and never mutated
    once returned to the caller.
    """

    __slots__ = ("_value", "_jacobians")

    def __init__(self, value: Any, jacobians: Optional[JacobianMap] = None) -> None:
        self._value = value
        self._jacobians: JacobianMap = {} if jacobians is None else jacobians

    @classmethod
    def seeded(cls, value: Any, key: Key) -> "Augmented":
        """Value of a single variable: d(value)/d(key) is the identity."""
        n = tangent_dim(value)
        return cls(value, {key: jnp.eye(n)})

    @classmethod
    def chain(
        cls,
        value: Any,
        contributions: Iterable[Tuple[Any, "Augmented"]],
    ) -> "Augmented":
        """
        Build the result of a function application.

        ``contributions`` yields ``(H_i, argument_i)`` pairs, one per argument
        of the function, where ``H_i`` is the local Jacobian of the function
        with respect to that argument (``None`` for constant arguments).
        """
        out_dim = tangent_dim(value)
        jacobians: JacobianMap = {}
        for H, argument in contributions:
            if argument.constant():
                continue
            if H is None:
                raise DimensionMismatch(
                    "primitive did not return a requested Jacobian",
                    (out_dim, tangent_dim(argument.value())),
                    None,
                )
            merge(jacobians, H, argument.jacobians(), out_dim)
        return cls(value, jacobians)

    def value(self) -> Any:
        return self._value

    def jacobians(self) -> JacobianMap:
        return self._jacobians

    def jacobian(self, key: Key) -> jnp.ndarray:
        return self._jacobians[key]

    def constant(self) -> bool:
        """True if the value does not depend on any variable."""
        return not self._jacobians

    def describe(self, key_formatter: Callable[[Hashable], str] = str) -> str:
        """One-line summary ``(key, rows x cols) ...`` for debugging."""
        parts = []
        for key in sorted(self._jacobians):
            H = self._jacobians[key]
            parts.append(f"({key_formatter(key)}, {H.shape[0]}x{H.shape[1]})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"Augmented(value={self._value!r}, jacobians=[{self.describe()}])"
