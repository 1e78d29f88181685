# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.

import time

import jax.numpy as jnp

from factor_expr.config import enable_x64
from factor_expr.core.expression import compose2, leaf
from factor_expr.core.primitives import jax_primitive
from factor_expr.core.types import Key, Values


def build_chain(depth: int = 20):
    """
    Deep binary chain sharing one variable at every level:
        e_0 = x,   e_{k+1} = e_k * x + y
    """
    x, y = leaf(Key(0)), leaf(Key(1))
    mul = jax_primitive(lambda a, b: a * b)
    add = jax_primitive(lambda a, b: a + b)

    e = x
    for _ in range(depth):
        e = compose2(add, compose2(mul, e, x), y)
    return e


def run_benchmark(depth: int = 20, repeats: int = 20):
    print("=== Expression evaluation benchmark ===")
    print(f"depth = {depth}, repeats = {repeats}")

    enable_x64()
    expr = build_chain(depth)
    values = Values({Key(0): jnp.full(3, 0.9), Key(1): jnp.full(3, 0.1)})

    # Warmup
    expr.value_and_jacobians(values)

    t0 = time.time()
    for _ in range(repeats):
        expr.value(values)
    t1 = time.time()
    for _ in range(repeats):
        value, jacobians = expr.value_and_jacobians(values)
    t2 = time.time()

    print(f"value only:          {(t1 - t0) * 1000 / repeats:.3f} ms / call")
    print(f"value + Jacobians:   {(t2 - t1) * 1000 / repeats:.3f} ms / call")
    print(f"value = {value}")
    for key, H in jacobians.items():
        print(f"d/d{key}: shape {H.shape}")


if __name__ == "__main__":
    run_benchmark(depth=20, repeats=20)
