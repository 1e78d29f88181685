# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Helpers for writing primitives.

jax_primitive(fn)
    Lift a pure `jax.numpy` function of array arguments into a primitive.
    Values are computed by calling ``fn``; requested local Jacobians come
    from ``jax.jacfwd`` and are flattened to ``(out_dim, in_dim)`` matrices.
    Only Euclidean arguments are supported: the tangent space of an array is
    the array itself.

fix_argument(function, arity, index, value)
    Bind one argument of a primitive to a fixed value, yielding a primitive
    of arity ``arity - 1``. Useful to turn ``unrotate(bearing, direction)``
    into the unary ``unrotate(·, direction)``.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp

from .expression_node import Primitive, call_primitive


def _jacobian_matrix(
    fn: Callable[..., jnp.ndarray],
    arguments: Tuple[jnp.ndarray, ...],
    i: int,
    out_dim: int,
) -> jnp.ndarray:
    jac = jax.jacfwd(fn, argnums=i)(*arguments)
    in_dim = int(jnp.size(arguments[i]))
    return jnp.reshape(jac, (out_dim, in_dim))


def jax_primitive(fn: Callable[..., jnp.ndarray]) -> Primitive:
    """Wrap ``fn`` so that its local Jacobians are derived with ``jax.jacfwd``."""

    @functools.wraps(fn)
    def primitive(*arguments: Any, derivatives: Optional[Tuple[bool, ...]] = None):
        arguments = tuple(jnp.asarray(a) for a in arguments)
        value = fn(*arguments)
        if derivatives is None:
            return value
        out_dim = int(jnp.size(value))
        jacobians = tuple(
            _jacobian_matrix(fn, arguments, i, out_dim) if wanted else None
            for i, wanted in enumerate(derivatives)
        )
        return value, jacobians

    return primitive


def fix_argument(function: Primitive, arity: int, index: int, fixed: Any) -> Primitive:
    """Primitive equal to ``function`` with argument ``index`` held at ``fixed``."""
    if not 0 <= index < arity:
        raise ValueError(f"index {index} out of range for arity {arity}")

    def bound(*arguments: Any, derivatives: Optional[Tuple[bool, ...]] = None):
        full = list(arguments)
        full.insert(index, fixed)
        if derivatives is None:
            return function(*full)
        requested = list(derivatives)
        requested.insert(index, False)
        value, jacobians = call_primitive(function, full, tuple(requested))
        jacobians = list(jacobians)
        del jacobians[index]
        return value, tuple(jacobians)

    bound.__name__ = f"{getattr(function, '__name__', 'primitive')}_fixed{index}"
    return bound
