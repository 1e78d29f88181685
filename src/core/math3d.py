# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Small rotation helpers shared by the value types and primitives.

Key Functions
-------------
hat(v)
    Converts a 3-vector to its skew-symmetric matrix, so that
    ``hat(a) @ b == cross(a, b)``.

rot_z(theta)
    Rotation by ``theta`` about the z axis (yaw).

rot_z_dot(theta)
    Derivative of ``rot_z`` with respect to ``theta``.

normalize(v)
    Unit vector along ``v``.

All functions take and return `jax.numpy` arrays.
"""

from __future__ import annotations

import jax.numpy as jnp


def hat(v: jnp.ndarray) -> jnp.ndarray:
    """so(3) hat operator: R^3 -> 3x3 skew-symmetric matrix."""
    x, y, z = v[0], v[1], v[2]
    return jnp.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def rot_z(theta) -> jnp.ndarray:
    """Yaw rotation matrix."""
    c = jnp.cos(theta)
    s = jnp.sin(theta)
    return jnp.array(
        [
            [c, -s, 0.0],
            [s, c, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )


def rot_z_dot(theta) -> jnp.ndarray:
    """d rot_z / d theta = hat(e_z) @ rot_z(theta)."""
    return hat(jnp.array([0.0, 0.0, 1.0])) @ rot_z(theta)


def normalize(v: jnp.ndarray) -> jnp.ndarray:
    v = jnp.asarray(v)
    return v / jnp.linalg.norm(v)
