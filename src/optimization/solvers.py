# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Nonlinear least-squares solver over expression factors.

This module implements a small, dense Gauss–Newton loop on top of
`slam.expression_factor.ExpressionFactor`. It is meant for tests and small
calibration problems, not for large SLAM graphs.

Key Concepts
------------
GNConfig
    Dataclass holding configuration for Gauss–Newton:
    - max_iters: maximum number of GN iterations
    - damping: Levenberg–Marquardt-style diagonal damping
    - max_step_norm: clamp on the update step size
    - tol: stop once the step norm falls below this value

build_ordering(factors, values)
    Sorted union of every factor's ``keys()`` with each variable's tangent
    dimension and column offset. This is how the system is pre-sized before
    any expression is evaluated.

gauss_newton(factors, initial, cfg)
    Each iteration linearizes every factor (one `value_and_jacobians` call
    each), stacks the whitened blocks into a dense J and r, solves

        (JᵀJ + λI) Δ = Jᵀ r

    and applies -Δ per variable with the manifold retraction from
    `slam.manifold`, so Rot2 / Unit3 variables stay on their manifolds.

Notes
-----
Variables that appear in ``initial`` but in no factor are carried through
unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import jax.numpy as jnp

from ..core.types import Key, Values, tangent_dim
from ..logger import factor_expr_logger as logger
from ..slam.expression_factor import ExpressionFactor
from ..slam.manifold import retract


@dataclass
class GNConfig:
    max_iters: int = 20
    damping: float = 1e-6       # LM-style diagonal damping
    max_step_norm: float = 1.0  # clamp step size for stability
    tol: float = 1e-10

    def __post_init__(self) -> None:
        if self.max_iters < 0:
            raise ValueError("max_iters must be non-negative")
        if self.damping < 0 or self.max_step_norm <= 0:
            raise ValueError("damping must be >= 0 and max_step_norm > 0")


def build_ordering(
    factors: Sequence[ExpressionFactor],
    values: Values,
) -> Tuple[Tuple[Key, ...], Dict[Key, slice]]:
    """
    Returns the sorted keys and a mapping Key -> slice of the tangent vector.
    """
    keys = set()
    for factor in factors:
        keys.update(factor.keys())
    ordering = tuple(sorted(keys))

    index: Dict[Key, slice] = {}
    offset = 0
    for key in ordering:
        dim = tangent_dim(values.at(key))
        index[key] = slice(offset, offset + dim)
        offset += dim
    return ordering, index


def total_error(factors: Sequence[ExpressionFactor], values: Values) -> float:
    return sum(factor.error(values) for factor in factors)


def linear_system(
    factors: Sequence[ExpressionFactor],
    values: Values,
    index: Dict[Key, slice],
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Dense whitened Jacobian J (m, n) and residual r (m,) at ``values``."""
    n = max((sl.stop for sl in index.values()), default=0)
    rows = []
    rhs = []
    for factor in factors:
        lin = factor.linearize(values)
        block_row = jnp.zeros((lin.b.shape[0], n))
        for key, A in lin.blocks.items():
            block_row = block_row.at[:, index[key]].set(A)
        rows.append(block_row)
        rhs.append(-lin.b)
    if not rows:
        return jnp.zeros((0, n)), jnp.zeros((0,))
    return jnp.concatenate(rows, axis=0), jnp.concatenate(rhs)


def gauss_newton(
    factors: Sequence[ExpressionFactor],
    initial: Values,
    cfg: GNConfig = GNConfig(),
) -> Values:
    """
    Gauss-Newton on the sum of the factors' squared whitened errors.

    Returns a new `Values`; ``initial`` is left untouched.
    """
    values = initial.copy()
    ordering, index = build_ordering(factors, values)
    if not ordering:
        return values

    for it in range(cfg.max_iters):
        J, r = linear_system(factors, values, index)   # (m, n), (m,)

        H = J.T @ J                                    # (n, n)
        g = J.T @ r                                    # (n,)
        n = H.shape[0]
        delta = jnp.linalg.solve(H + cfg.damping * jnp.eye(n), g)

        # Optional step-size clamp to avoid huge jumps
        step_norm = float(jnp.linalg.norm(delta))
        scale = min(1.0, cfg.max_step_norm / (step_norm + 1e-12))

        for key in ordering:
            values.update_value(key, retract(values.at(key), -scale * delta[index[key]]))

        logger.info(
            "gauss_newton iter %d: error %.6g, step %.3g",
            it, total_error(factors, values), scale * step_norm,
        )
        if scale * step_norm < cfg.tol:
            break

    return values
