# tests/test_augmented.py
from __future__ import annotations

import itertools

import jax.numpy as jnp
import pytest

from factor_expr.core.augmented import Augmented, merge
from factor_expr.core.errors import DimensionMismatch
from factor_expr.core.types import Key


def test_merge_inserts_then_accumulates():
    """
    First contribution for a key is stored as H·M, later ones are added:
        target[k] = H1·M1 + H2·M2
    """
    H1 = jnp.array([[1.0, 2.0], [0.0, 1.0]])
    H2 = jnp.array([[3.0, 0.0], [1.0, 1.0]])
    M = jnp.array([[1.0], [2.0]])

    target = {}
    merge(target, H1, {Key(0): M}, out_dim=2)
    assert jnp.allclose(target[Key(0)], H1 @ M)

    merge(target, H2, {Key(0): M, Key(1): jnp.eye(2)}, out_dim=2)
    assert jnp.allclose(target[Key(0)], H1 @ M + H2 @ M)
    assert jnp.allclose(target[Key(1)], H2)


def test_merge_is_order_independent():
    contributions = [
        (jnp.array([[1.0, 0.5]]), {Key(0): jnp.array([[1.0], [2.0]]), Key(1): jnp.eye(2)}),
        (jnp.array([[2.0]]), {Key(0): jnp.array([[3.0]])}),
        (jnp.array([[0.0, 1.0, -1.0]]), {Key(1): jnp.ones((3, 2))}),
    ]

    results = []
    for perm in itertools.permutations(contributions):
        target = {}
        for H, terms in perm:
            merge(target, H, terms, out_dim=1)
        results.append(target)

    first = results[0]
    for other in results[1:]:
        assert set(other) == set(first)
        for key in first:
            assert jnp.allclose(other[key], first[key])


def test_merge_rejects_inconsistent_shapes():
    target = {}
    with pytest.raises(DimensionMismatch):
        # H has 3 columns but the argument is 2-dimensional
        merge(target, jnp.ones((1, 3)), {Key(0): jnp.eye(2)}, out_dim=1)

    with pytest.raises(DimensionMismatch):
        # H produces 2 rows for a 1-dimensional output
        merge(target, jnp.ones((2, 2)), {Key(0): jnp.eye(2)}, out_dim=1)

    merge(target, jnp.ones((1, 2)), {Key(0): jnp.eye(2)}, out_dim=1)
    with pytest.raises(DimensionMismatch):
        # same key, but now seen as a 3-dimensional variable
        merge(target, jnp.ones((1, 2)), {Key(0): jnp.ones((2, 3))}, out_dim=1)


def test_seeded_augmented_is_identity():
    a = Augmented.seeded(jnp.array([1.0, 2.0, 3.0]), Key(4))
    assert not a.constant()
    assert jnp.allclose(a.jacobian(Key(4)), jnp.eye(3))


def test_constant_augmented_and_describe():
    a = Augmented(jnp.zeros(2))
    assert a.constant()
    assert a.jacobians() == {}
    assert a.describe() == ""

    b = Augmented(jnp.zeros(2), {Key(2): jnp.ones((2, 1)), Key(1): jnp.ones((2, 3))})
    assert b.describe() == "(1, 2x3) (2, 2x1)"
    assert b.describe(lambda k: f"x{k}") == "(x1, 2x3) (x2, 2x1)"


def test_chain_requires_requested_jacobian():
    argument = Augmented.seeded(jnp.zeros(2), Key(0))
    with pytest.raises(DimensionMismatch):
        Augmented.chain(jnp.zeros(2), [(None, argument)])


def test_chain_skips_constant_arguments():
    argument = Augmented(jnp.zeros(2))
    result = Augmented.chain(jnp.zeros(3), [(None, argument)])
    assert result.constant()
