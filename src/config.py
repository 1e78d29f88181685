# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Numeric precision switch for FactorExpr.

JAX computes in float32 unless 64-bit mode is enabled. Jacobian checks
against numerical derivatives are only meaningful down to ~1e-7 in float64,
so estimation code (and the test suite) should call :func:`enable_x64`
before creating any arrays.
"""

from __future__ import annotations

import jax


def enable_x64(enabled: bool = True) -> None:
    """Turn JAX 64-bit mode on (default) or off."""
    jax.config.update("jax_enable_x64", enabled)


def x64_enabled() -> bool:
    return bool(jax.config.jax_enable_x64)
