# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Least-squares residuals built from expressions.

An :class:`ExpressionFactor` pairs an expression h(x) with a measurement z
and a noise standard deviation σ:

    unwhitened error   e(x) = local(z, h(x))
    whitened error     r(x) = e(x) / σ
    error              0.5 * ||r(x)||²

`linearize` evaluates the expression once with Jacobians and returns the
whitened blocks A_k = (d h / d x_k) / σ together with b = -r(x), the
contribution of this factor to the Gauss–Newton system.

The derivative of the measurement chart ``local(z, ·)`` is taken as the
identity, which is exact for vector-valued measurements and accurate near
zero error for manifold-valued ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

import jax.numpy as jnp

from ..core.expression import Expression
from ..core.types import Key, tangent_dim
from .manifold import local_coordinates


@dataclass
class LinearizedFactor:
    """Whitened Jacobian blocks (one per key) and right-hand side of one factor."""
    keys: Tuple[Key, ...]
    blocks: Dict[Key, jnp.ndarray]
    b: jnp.ndarray


@dataclass
class ExpressionFactor:
    expression: Expression
    measured: Any
    sigma: Any = 1.0

    def __post_init__(self) -> None:
        if not isinstance(self.expression, Expression):
            raise TypeError("ExpressionFactor needs an Expression")
        sigma = jnp.asarray(self.sigma)
        if jnp.any(sigma <= 0):
            raise ValueError("sigma must be positive")
        if sigma.ndim > 0 and sigma.shape[0] != tangent_dim(self.measured):
            raise ValueError(
                f"sigma has {sigma.shape[0]} entries for a {tangent_dim(self.measured)}-dim measurement"
            )

    def keys(self) -> Tuple[Key, ...]:
        return tuple(sorted(self.expression.keys()))

    def dim(self) -> int:
        return tangent_dim(self.measured)

    def _whiten(self, r: jnp.ndarray) -> jnp.ndarray:
        sigma = jnp.asarray(self.sigma)
        if sigma.ndim == 0:
            return r / sigma
        return r / jnp.reshape(sigma, (-1,) + (1,) * (r.ndim - 1))

    def unwhitened_error(self, values: Mapping[Key, Any]) -> jnp.ndarray:
        return local_coordinates(self.measured, self.expression.value(values))

    def whitened_error(self, values: Mapping[Key, Any]) -> jnp.ndarray:
        return self._whiten(self.unwhitened_error(values))

    def error(self, values: Mapping[Key, Any]) -> float:
        r = self.whitened_error(values)
        return 0.5 * float(jnp.dot(r, r))

    def linearize(self, values: Mapping[Key, Any]) -> LinearizedFactor:
        value, jacobians = self.expression.value_and_jacobians(values)
        r = self._whiten(local_coordinates(self.measured, value))
        blocks = {key: self._whiten(H) for key, H in jacobians.items()}
        return LinearizedFactor(keys=self.keys(), blocks=blocks, b=-r)
