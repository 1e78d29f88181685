# tests/test_expression.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import jax.numpy as jnp
import pytest

from factor_expr.core.errors import DimensionMismatch, MalformedGraph, UnboundVariable
from factor_expr.core.expression import Expression, compose1, compose2, compose3, constant, leaf
from factor_expr.core.primitives import jax_primitive
from factor_expr.core.types import Key, Values
from factor_expr.slam.manifold import Rot2, Unit3
from factor_expr.slam.numerical import numerical_jacobians

X, Y, Z = Key(1), Key(2), Key(3)

square = jax_primitive(lambda v: v * v)
add = jax_primitive(lambda a, b: a + b)
mul = jax_primitive(lambda a, b: a * b)
weighted_sum = jax_primitive(lambda a, b, c: a + 2.0 * b + 3.0 * c)


@pytest.fixture
def values() -> Values:
    return Values({
        X: jnp.array([1.0, -2.0]),
        Y: jnp.array([0.5, 3.0]),
        Z: jnp.array([-1.5, 0.25]),
    })


def test_constant_has_no_jacobians(values):
    e = constant(jnp.array([1.0, 2.0, 3.0]))
    assert e.keys() == frozenset()

    for bindings in (values, Values(), {X: jnp.zeros(2)}):
        value, jacobians = e.value_and_jacobians(bindings)
        assert jnp.allclose(value, jnp.array([1.0, 2.0, 3.0]))
        assert jacobians == {}


@pytest.mark.parametrize(
    "value, dim",
    [
        (jnp.array([1.0, 2.0, 3.0]), 3),
        (2.5, 1),
        (Rot2(0.3), 1),
        (Unit3.from_xyz(1.0, 2.0, 3.0), 2),
    ],
)
def test_leaf_seeds_identity(value, dim):
    e = leaf(X)
    result, jacobians = e.value_and_jacobians({X: value})
    assert result is value
    assert list(jacobians) == [X]
    assert jnp.allclose(jacobians[X], jnp.eye(dim))


def test_unary_chain_rule_matches_local_jacobian(values):
    """
    compose1(f, leaf(x)): the stored Jacobian is exactly f's local Jacobian.
    """
    e = compose1(square, leaf(X))
    value, jacobians = e.value_and_jacobians(values)

    x = values[X]
    assert jnp.allclose(value, x * x)
    assert jnp.allclose(jacobians[X], jnp.diag(2.0 * x))

    numerical = numerical_jacobians(e, values)
    assert jnp.allclose(jacobians[X], numerical[X], atol=1e-7)


def test_value_matches_value_and_jacobians(values):
    e = compose2(mul, compose1(square, leaf(X)), compose2(add, leaf(Y), constant(jnp.ones(2))))
    value, _ = e.value_and_jacobians(values)
    assert jnp.allclose(e.value(values), value)


def test_shared_subexpression_contributions_are_summed(values):
    """
    f(e, e) with the same sub-expression in both slots:
        d(e + e)/dx = 2 de/dx,   d(e * e)/dx = 2 e de/dx
    A merge that overwrote instead of adding would return only de/dx.
    """
    e = compose1(square, leaf(X))
    x = values[X]
    de = jnp.diag(2.0 * x)

    _, jac_sum = compose2(add, e, e).value_and_jacobians(values)
    assert jnp.allclose(jac_sum[X], 2.0 * de)

    _, jac_prod = compose2(mul, e, e).value_and_jacobians(values)
    assert jnp.allclose(jac_prod[X], 2.0 * jnp.diag(x * x) @ de)


def test_shared_variable_across_different_children(values):
    """x reaches the root through two distinct sub-graphs."""
    e = compose2(add, compose1(square, leaf(X)), compose2(mul, leaf(X), leaf(Y)))
    _, jacobians = e.value_and_jacobians(values)

    x, y = values[X], values[Y]
    assert jnp.allclose(jacobians[X], jnp.diag(2.0 * x) + jnp.diag(y))
    assert jnp.allclose(jacobians[Y], jnp.diag(x))

    numerical = numerical_jacobians(e, values)
    for key in (X, Y):
        assert jnp.allclose(jacobians[key], numerical[key], atol=1e-7)


def test_ternary_includes_every_argument(values):
    e = compose3(weighted_sum, leaf(X), leaf(Y), leaf(Z))
    _, jacobians = e.value_and_jacobians(values)
    assert set(jacobians) == {X, Y, Z}
    assert jnp.allclose(jacobians[X], jnp.eye(2))
    assert jnp.allclose(jacobians[Y], 2.0 * jnp.eye(2))
    assert jnp.allclose(jacobians[Z], 3.0 * jnp.eye(2))


def test_ternary_sensitivity_to_third_argument_only(values):
    """Regression: the third argument's contribution must not be dropped."""
    e = compose3(weighted_sum, constant(jnp.ones(2)), constant(jnp.ones(2)), compose1(square, leaf(Z)))
    value, jacobians = e.value_and_jacobians(values)

    z = values[Z]
    assert jnp.allclose(value, 3.0 + 3.0 * z * z)
    assert list(jacobians) == [Z]
    assert jnp.allclose(jacobians[Z], 3.0 * jnp.diag(2.0 * z))


def test_ternary_shared_argument_in_all_slots(values):
    e = compose3(weighted_sum, leaf(X), leaf(X), leaf(X))
    _, jacobians = e.value_and_jacobians(values)
    assert jnp.allclose(jacobians[X], 6.0 * jnp.eye(2))


def test_keys_is_union_of_reachable_leaves():
    x = leaf(X)
    e = compose2(add, x, compose3(weighted_sum, x, leaf(Y), constant(jnp.zeros(2))))
    assert e.keys() == frozenset({X, Y})
    assert compose1(square, constant(jnp.ones(2))).keys() == frozenset()
    assert compose2(add, x, x).keys() == frozenset({X})


def test_unbound_variable_aborts_evaluation(values):
    e = compose2(add, leaf(X), leaf(Key(99)))

    with pytest.raises(UnboundVariable) as excinfo:
        e.value_and_jacobians(values)
    assert excinfo.value.key == Key(99)

    with pytest.raises(KeyError):
        e.value(values)

    with pytest.raises(UnboundVariable):
        e.value({X: jnp.zeros(2)})


def test_constant_subgraph_skips_derivative_requests():
    calls = []

    def recorder(a, b, derivatives=None):
        calls.append(derivatives)
        value = a + b
        if derivatives is None:
            return value
        I = jnp.eye(2)
        return value, tuple(I if wanted else None for wanted in derivatives)

    bindings = {X: jnp.zeros(2)}

    compose2(recorder, constant(jnp.ones(2)), leaf(X)).value_and_jacobians(bindings)
    assert calls[-1] == (False, True)

    _, jacobians = compose2(recorder, constant(jnp.ones(2)), constant(jnp.ones(2))).value_and_jacobians(bindings)
    assert calls[-1] is None
    assert jacobians == {}

    compose2(recorder, leaf(X), leaf(X)).value(bindings)
    assert calls[-1] is None


def test_wrong_jacobian_shape_raises_dimension_mismatch():
    def bad(a, derivatives=None):
        value = 2.0 * a
        if derivatives is None:
            return value
        return value, (jnp.ones((2, 3)),)

    e = compose1(bad, leaf(X))
    with pytest.raises(DimensionMismatch):
        e.value_and_jacobians({X: jnp.zeros(2)})

    # value-only evaluation never looks at Jacobians
    assert jnp.allclose(e.value({X: jnp.ones(2)}), 2.0 * jnp.ones(2))


def test_vector_jacobian_is_not_reshaped():
    def stretch(a, derivatives=None):
        value = jnp.array([1.0, 2.0, 3.0]) * a
        if derivatives is None:
            return value
        return value, (jnp.array([1.0, 2.0, 3.0]),)

    e = compose1(stretch, leaf(X))
    with pytest.raises(DimensionMismatch) as excinfo:
        e.value_and_jacobians({X: jnp.array([0.5])})
    assert excinfo.value.actual == (3,)


def test_missing_requested_jacobian_raises_dimension_mismatch():
    def lazy(a, derivatives=None):
        if derivatives is None:
            return a
        return a, (None,)

    with pytest.raises(DimensionMismatch):
        compose1(lazy, leaf(X)).value_and_jacobians({X: jnp.zeros(2)})


def test_malformed_graph_and_primitive_results():
    with pytest.raises(MalformedGraph):
        compose1(square, "x")
    with pytest.raises(MalformedGraph):
        compose2(add, leaf(X), leaf(Y).root)
    with pytest.raises(MalformedGraph):
        compose1(42, leaf(X))
    with pytest.raises(MalformedGraph):
        Expression("not a node")

    def value_only(a, derivatives=None):
        return a

    with pytest.raises(MalformedGraph):
        compose1(value_only, leaf(X)).value_and_jacobians({X: jnp.zeros(2)})

    def too_many_slots(a, derivatives=None):
        if derivatives is None:
            return a
        return a, (jnp.eye(2), jnp.eye(2))

    with pytest.raises(MalformedGraph):
        compose1(too_many_slots, leaf(X)).value_and_jacobians({X: jnp.zeros(2)})


def test_concurrent_evaluation_of_shared_graph():
    e = compose2(mul, compose1(square, leaf(X)), leaf(Y))
    bindings = [
        {X: jnp.array([float(i), 1.0]), Y: jnp.array([2.0, float(-i)])}
        for i in range(16)
    ]
    serial = [e.value_and_jacobians(b) for b in bindings]

    with ThreadPoolExecutor(max_workers=4) as pool:
        parallel = list(pool.map(e.value_and_jacobians, bindings))

    for (v0, j0), (v1, j1) in zip(serial, parallel):
        assert jnp.allclose(v0, v1)
        assert set(j0) == set(j1)
        for key in j0:
            assert jnp.allclose(j0[key], j1[key])


def test_repr_names_root_and_keys():
    e = compose2(add, leaf(Y), leaf(X))
    assert repr(e).startswith("Expression(binary:")
    assert "keys=[1, 2]" in repr(e)
