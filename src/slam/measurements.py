# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Magnetometer measurement models for FactorExpr.

This module defines the *measurement-level* building blocks used with
expressions: differentiable primitives with analytic local Jacobians, and
builders that compose them into measurement expressions.

A magnetometer at body orientation nRb measures the local magnetic field
n_M (a fixed vector in the navigation frame), rotated into the body frame,
scaled and offset by a bias:

    measured = scale * nRbᵀ · direction(n_M) + bias

1. Primitives
-------------
All primitives follow the expression calling convention
``f(*args, derivatives=None)`` (see `core.expression_node`).

    • `unrotate(bearing, direction)`:
        Unit3 direction expressed in a body frame yawed by a Rot2 bearing.
        Jacobians 2x1 (bearing) and 2x2 (direction).

    • `scale_direction(scale, direction)`:
        Point3 ``scale * direction``. Jacobians 3x1 and 3x2.

    • `unrotate_point(bearing, point)`:
        Point3 rotated into the body frame. Jacobians 3x1 and 3x3.

    • `add_bias(vector, bias)`:
        ``vector + bias``. Identity Jacobians.

    • `mag_prediction(rotation)`:
        Factory for the ternary primitive
        ``(scale, direction, bias) -> rotationᵀ (scale * direction) + bias``.

2. Expression builders
----------------------
    • `mag_bearing_expression`: prediction as a function of the bearing only
      (scale, direction and bias are known constants).
    • `mag_calibration_expression`: prediction as a function of scale,
      direction and bias, with the orientation known.
    • `mag_scaled_bias_expression`: prediction as a function of the scaled
      field and the bias, with the orientation known.

Wrap any of them in `slam.expression_factor.ExpressionFactor` together with
the measured field to obtain a least-squares residual.
"""

from __future__ import annotations

from typing import Optional, Tuple

import jax.numpy as jnp

from ..core.expression import Expression, compose1, compose2, compose3, constant, leaf
from ..core.math3d import rot_z, rot_z_dot
from ..core.primitives import jax_primitive
from ..core.types import Key
from .manifold import Rot2, Unit3

Derivatives = Optional[Tuple[bool, ...]]


def unrotate(bearing: Rot2, direction: Unit3, derivatives: Derivatives = None):
    """
    Rotate ``direction`` into a body frame yawed by ``bearing``:
        q = Rz(bearing)ᵀ · direction
    """
    R = rot_z(bearing.theta)
    q = Unit3(R.T @ direction.point3())
    if derivatives is None:
        return q
    H_bearing = H_direction = None
    Bq = q.basis()
    if derivatives[0]:
        H_bearing = Bq.T @ jnp.reshape(rot_z_dot(bearing.theta).T @ direction.point3(), (3, 1))
    if derivatives[1]:
        H_direction = Bq.T @ R.T @ direction.basis()
    return q, (H_bearing, H_direction)


def scale_direction(scale, direction: Unit3, derivatives: Derivatives = None):
    """Point3 ``scale * direction``; ``scale`` is a length-1 array or scalar."""
    s = jnp.reshape(jnp.asarray(scale), ())
    p = direction.point3()
    value = s * p
    if derivatives is None:
        return value
    H_scale = jnp.reshape(p, (3, 1)) if derivatives[0] else None
    H_direction = s * direction.basis() if derivatives[1] else None
    return value, (H_scale, H_direction)


def unrotate_point(bearing: Rot2, point, derivatives: Derivatives = None):
    """Point3 ``Rz(bearing)ᵀ · point``."""
    point = jnp.asarray(point)
    R = rot_z(bearing.theta)
    value = R.T @ point
    if derivatives is None:
        return value
    H_bearing = jnp.reshape(rot_z_dot(bearing.theta).T @ point, (3, 1)) if derivatives[0] else None
    H_point = R.T if derivatives[1] else None
    return value, (H_bearing, H_point)


def add_bias(vector, bias, derivatives: Derivatives = None):
    vector = jnp.asarray(vector)
    bias = jnp.asarray(bias)
    value = vector + bias
    if derivatives is None:
        return value
    I = jnp.eye(value.shape[0])
    return value, (I if derivatives[0] else None, I if derivatives[1] else None)


def mag_prediction(rotation: jnp.ndarray):
    """
    Ternary primitive for a known orientation ``rotation`` (3x3, nRb):

        h(scale, direction, bias) = rotationᵀ (scale * direction) + bias
    """
    Rt = jnp.asarray(rotation).T

    def predict(scale, direction: Unit3, bias, derivatives: Derivatives = None):
        s = jnp.reshape(jnp.asarray(scale), ())
        d = direction.point3()
        value = Rt @ (s * d) + jnp.asarray(bias)
        if derivatives is None:
            return value
        H_scale = jnp.reshape(Rt @ d, (3, 1)) if derivatives[0] else None
        H_direction = s * (Rt @ direction.basis()) if derivatives[1] else None
        H_bias = jnp.eye(3) if derivatives[2] else None
        return value, (H_scale, H_direction, H_bias)

    predict.__name__ = "mag_prediction"
    return predict


def mag_bearing_expression(
    bearing_key: Key,
    scale: float,
    direction: Unit3,
    bias: jnp.ndarray,
) -> Expression:
    """Predicted measurement as a function of the bearing variable."""
    body_direction = compose2(unrotate, leaf(bearing_key), constant(direction))
    scaled = compose2(scale_direction, constant(jnp.array([scale])), body_direction)
    return compose2(add_bias, scaled, constant(jnp.asarray(bias)))


def mag_calibration_expression(
    scale_key: Key,
    direction_key: Key,
    bias_key: Key,
    rotation: jnp.ndarray,
) -> Expression:
    """Predicted measurement as a function of scale, field direction and bias."""
    return compose3(mag_prediction(rotation), leaf(scale_key), leaf(direction_key), leaf(bias_key))


def mag_scaled_bias_expression(
    scaled_key: Key,
    bias_key: Key,
    rotation: jnp.ndarray,
) -> Expression:
    """Predicted measurement as a function of the scaled field and the bias."""
    Rt = jnp.asarray(rotation).T

    def rotate_into_body(field):
        return Rt @ field

    body_field = compose1(jax_primitive(rotate_into_body), leaf(scaled_key))
    return compose2(add_bias, body_field, leaf(bias_key))
