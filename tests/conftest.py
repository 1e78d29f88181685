"""Shared pytest configuration: 64-bit JAX, headless matplotlib, magnetometer scenario."""

from __future__ import annotations

from dataclasses import dataclass

import matplotlib

matplotlib.use("Agg")

import jax.numpy as jnp
import pytest

from factor_expr.config import enable_x64, x64_enabled

if not x64_enabled():
    enable_x64()

from factor_expr.core.math3d import rot_z
from factor_expr.slam.manifold import Rot2, Unit3


@dataclass(frozen=True)
class MagScenario:
    """
    Magnetometer ground truth.

    Field from the IGRF/WMM model near Atlanta, as an NED vector in nT,
    observed by a sensor yawed by -0.1 rad with a fixed scale and bias.
    """
    nM: jnp.ndarray
    scale: float
    bearing: Rot2
    nRb: jnp.ndarray
    bias: jnp.ndarray
    direction: Unit3
    scaled: jnp.ndarray
    measured: jnp.ndarray
    field_strength: float

    @classmethod
    def build(cls, yaw: float = -0.1) -> "MagScenario":
        nM = jnp.array([22653.29982, -1956.83010, 44202.47862])
        scale = 255.0 / 50000.0
        nRb = rot_z(yaw)
        bias = jnp.array([10.0, -10.0, 50.0])
        return cls(
            nM=nM,
            scale=scale,
            bearing=Rot2(yaw),
            nRb=nRb,
            bias=bias,
            direction=Unit3(nM),
            scaled=scale * nM,
            measured=scale * nRb.T @ nM + bias,
            field_strength=scale * float(jnp.linalg.norm(nM)),
        )


@pytest.fixture
def mag() -> MagScenario:
    return MagScenario.build()
