# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
FactorExpr: compositional forward-mode Jacobians for least-squares estimation.

Measurement models are written as expression graphs over named variables;
evaluating an expression returns its value together with the sparse
Jacobian with respect to every variable it depends on.
"""

from .core.augmented import Augmented, merge
from .core.errors import DimensionMismatch, ExpressionError, MalformedGraph, UnboundVariable
from .core.expression import Expression, compose1, compose2, compose3, constant, leaf
from .core.primitives import fix_argument, jax_primitive
from .core.types import JacobianMap, Key, Values, tangent_dim

__all__ = [
    "Augmented",
    "merge",
    "DimensionMismatch",
    "ExpressionError",
    "MalformedGraph",
    "UnboundVariable",
    "Expression",
    "compose1",
    "compose2",
    "compose3",
    "constant",
    "leaf",
    "fix_argument",
    "jax_primitive",
    "JacobianMap",
    "Key",
    "Values",
    "tangent_dim",
]
