# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Manifold value types used by the navigation primitives.

Expressions only need two things from a value: its tangent dimension and,
for solvers and numerical differentiation, a local parameterization. This
module provides both for the types the magnetometer models work with:

    • Euclidean vectors        plain `jax.numpy` arrays, dim = size
    • `Rot2`                   planar rotation / bearing, dim 1
    • `Unit3`                  direction on the unit sphere S², dim 2

and the dispatch helpers

    • `retract(value, delta)`            value ⊕ δ
    • `local_coordinates(value, other)`  δ such that value ⊕ δ ≈ other
    • `get_manifold(value)`              "rot2" / "unit3" / "euclidean"

which solvers and `slam.numerical` use so they never hard-code the
geometry of a particular type.

Conventions
-----------
`Unit3` follows the classic sphere parameterization: the tangent basis at a
point p is built from the coordinate axis least aligned with p,

    b1 = normalize(p × axis),  b2 = normalize(p × b1),

retraction is the sphere exponential along ``B δ`` and local coordinates are
the inverse (log) map expressed in the basis of the base point.
"""

from __future__ import annotations

import math
from typing import Any, Dict

import jax.numpy as jnp

from ..core.math3d import normalize
from ..logger import factor_expr_logger as logger

TYPE_TO_MANIFOLD: Dict[str, str] = {
    "Rot2": "rot2",
    "Unit3": "unit3",
}


def _wrap_angle(theta):
    return jnp.arctan2(jnp.sin(theta), jnp.cos(theta))


class Rot2:
    """Planar rotation stored by its angle, wrapped to (-pi, pi]."""

    __slots__ = ("_theta",)

    def __init__(self, theta) -> None:
        self._theta = _wrap_angle(jnp.reshape(jnp.asarray(theta), ()) * 1.0)

    @property
    def theta(self) -> jnp.ndarray:
        return self._theta

    def dim(self) -> int:
        return 1

    def matrix(self) -> jnp.ndarray:
        c, s = jnp.cos(self._theta), jnp.sin(self._theta)
        return jnp.array([[c, -s], [s, c]])

    def retract(self, delta) -> "Rot2":
        delta = jnp.reshape(jnp.asarray(delta), (1,))
        return Rot2(self._theta + delta[0])

    def local_coordinates(self, other: "Rot2") -> jnp.ndarray:
        return jnp.reshape(_wrap_angle(other.theta - self._theta), (1,))

    def equals(self, other: "Rot2", tol: float = 1e-9) -> bool:
        return abs(float(self.local_coordinates(other)[0])) <= tol

    def __repr__(self) -> str:
        return f"Rot2(theta={float(self._theta):.6g})"


class Unit3:
    """Direction in R^3, stored as a unit vector."""

    __slots__ = ("_p",)

    def __init__(self, p) -> None:
        p = jnp.reshape(jnp.asarray(p), (3,)) * 1.0
        norm = float(jnp.linalg.norm(p))
        if norm < 1e-12:
            raise ValueError("Unit3 requires a non-zero direction")
        self._p = p / norm

    @classmethod
    def from_xyz(cls, x: float, y: float, z: float) -> "Unit3":
        return cls(jnp.array([x, y, z]))

    def point3(self) -> jnp.ndarray:
        return self._p

    def dim(self) -> int:
        return 2

    def basis(self) -> jnp.ndarray:
        """3x2 orthonormal basis of the tangent plane at this point."""
        p = self._p
        m = jnp.abs(p)
        # axis of minimal projected length
        if m[0] <= m[1] and m[0] <= m[2]:
            axis = jnp.array([1.0, 0.0, 0.0])
        elif m[1] <= m[0] and m[1] <= m[2]:
            axis = jnp.array([0.0, 1.0, 0.0])
        else:
            axis = jnp.array([0.0, 0.0, 1.0])
        b1 = normalize(jnp.cross(p, axis))
        b2 = normalize(jnp.cross(p, b1))
        return jnp.stack([b1, b2], axis=1)

    def retract(self, delta) -> "Unit3":
        delta = jnp.reshape(jnp.asarray(delta), (2,))
        xi_hat = self.basis() @ delta
        angle = float(jnp.linalg.norm(xi_hat))
        if angle == 0.0:
            return Unit3(self._p)
        return Unit3(jnp.cos(angle) * self._p + jnp.sin(angle) * (xi_hat / angle))

    def local_coordinates(self, other: "Unit3") -> jnp.ndarray:
        q = other.point3()
        dot = float(jnp.dot(self._p, q))
        if abs(dot - 1.0) < 1e-16:
            return jnp.zeros(2)
        if abs(dot + 1.0) < 1e-16:
            logger.warning("local coordinates between antipodal directions are ambiguous")
            return jnp.array([math.pi, 0.0])
        angle = math.acos(max(-1.0, min(1.0, dot)))
        ratio = angle / math.sin(angle) if angle > 1e-8 else 1.0
        result_hat = ratio * (q - self._p * dot)
        return self.basis().T @ result_hat

    def equals(self, other: "Unit3", tol: float = 1e-9) -> bool:
        return bool(jnp.allclose(self._p, other.point3(), rtol=0.0, atol=tol))

    def __repr__(self) -> str:
        x, y, z = (float(c) for c in self._p)
        return f"Unit3({x:.6g}, {y:.6g}, {z:.6g})"


def get_manifold(value: Any) -> str:
    return TYPE_TO_MANIFOLD.get(type(value).__name__, "euclidean")


def retract(value: Any, delta: jnp.ndarray) -> Any:
    """``value ⊕ delta`` for any supported value type."""
    if get_manifold(value) != "euclidean":
        return value.retract(delta)
    value = jnp.asarray(value)
    return value + jnp.reshape(jnp.asarray(delta), value.shape)


def local_coordinates(value: Any, other: Any) -> jnp.ndarray:
    """Tangent vector at ``value`` pointing to ``other``, as a flat array."""
    if get_manifold(value) != "euclidean":
        return value.local_coordinates(other)
    return jnp.ravel(jnp.asarray(other) - jnp.asarray(value))
