# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Numerical derivatives on manifolds.

Used to validate the analytic Jacobians that primitives report. For a
function y = f(x1, ..., xn) and argument i the derivative is taken with
central differences in the tangent spaces of the argument and the result:

    H[:, j] = ( local(f(x), f(x_i ⊕ +δ e_j)) - local(f(x), f(x_i ⊕ -δ e_j)) ) / 2δ

so H has shape ``dim(y) x dim(x_i)``, exactly the shape an expression stores
in its Jacobian map. Primitives are called in their value-only form.

The ``numerical_derivativeNK`` helpers differentiate an N-argument function
with respect to argument K (1-based), mirroring the classic naming.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import jax.numpy as jnp

from ..core.types import JacobianMap, Key, lookup, tangent_dim
from .manifold import local_coordinates, retract


@dataclass
class NumericalDiffConfig:
    delta: float = 1e-5


def _central_difference(at: Callable[[jnp.ndarray], jnp.ndarray], n: int, delta: float) -> jnp.ndarray:
    columns = []
    for j in range(n):
        d = jnp.zeros(n).at[j].set(delta)
        columns.append((at(d) - at(-d)) / (2.0 * delta))
    return jnp.stack(columns, axis=1)


def numerical_derivative(
    function: Callable[..., Any],
    arguments: Sequence[Any],
    index: int,
    delta: float = NumericalDiffConfig.delta,
) -> jnp.ndarray:
    """Central-difference Jacobian of ``function`` w.r.t. ``arguments[index]``."""
    arguments = list(arguments)
    x = arguments[index]
    fx = function(*arguments)
    n = tangent_dim(x)

    def at(step: jnp.ndarray) -> jnp.ndarray:
        shifted = list(arguments)
        shifted[index] = retract(x, step)
        return local_coordinates(fx, function(*shifted))

    return _central_difference(at, n, delta)


def numerical_derivative11(f, x, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x,), 0, delta)


def numerical_derivative21(f, x1, x2, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x1, x2), 0, delta)


def numerical_derivative22(f, x1, x2, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x1, x2), 1, delta)


def numerical_derivative31(f, x1, x2, x3, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x1, x2, x3), 0, delta)


def numerical_derivative32(f, x1, x2, x3, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x1, x2, x3), 1, delta)


def numerical_derivative33(f, x1, x2, x3, delta: float = NumericalDiffConfig.delta) -> jnp.ndarray:
    return numerical_derivative(f, (x1, x2, x3), 2, delta)


def numerical_jacobians(
    expression: Any,
    values: Mapping[Key, Any],
    delta: float = NumericalDiffConfig.delta,
) -> JacobianMap:
    """
    Numerical counterpart of ``expression.value_and_jacobians(values)[1]``.

    Every key in ``expression.keys()`` is perturbed in its own tangent space
    while the other bindings are held fixed.
    """
    fx = expression.value(values)
    jacobians: JacobianMap = {}
    for key in sorted(expression.keys()):
        x = lookup(values, key)

        def at(step: jnp.ndarray, key=key, x=x) -> jnp.ndarray:
            shifted = dict(values)
            shifted[key] = retract(x, step)
            return local_coordinates(fx, expression.value(shifted))

        jacobians[key] = _central_difference(at, tangent_dim(x), delta)
    return jacobians
