# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Expression façade and combinators.

An :class:`Expression` is a cheap handle on the root of an immutable node
graph. Expressions are assembled bottom-up::

    bearing = leaf(Key(1))
    field = constant(direction)
    predicted = compose2(unrotate, bearing, field)

and evaluated against bindings::

    value = predicted.value(values)
    value, jacobians = predicted.value_and_jacobians(values)

Combinators only accept finished :class:`Expression` objects, and nodes
expose no way to re-point a child, so a graph can never contain a cycle.
The same sub-expression may be handed to several combinators (or twice to
one of them); the result is a DAG and the derivatives reaching a variable
along different paths are summed.

Primitive functions follow the calling convention documented in
:mod:`factor_expr.core.expression_node`.
"""

from __future__ import annotations

from typing import Any, FrozenSet, Mapping, Tuple

from ..logger import factor_expr_logger as logger
from .augmented import Augmented
from .errors import MalformedGraph
from .expression_node import (
    BinaryNode,
    ConstantNode,
    ExpressionNode,
    LeafNode,
    Primitive,
    TernaryNode,
    UnaryNode,
)
from .types import JacobianMap, Key


class Expression:
    """Handle on the root node of an expression graph."""

    __slots__ = ("_root",)

    def __init__(self, root: ExpressionNode) -> None:
        if not isinstance(root, ExpressionNode):
            raise MalformedGraph(f"expression root must be a node, got {type(root).__name__}")
        self._root = root

    @property
    def root(self) -> ExpressionNode:
        return self._root

    def keys(self) -> FrozenSet[Key]:
        """Variables this expression depends on, independent of any binding."""
        return self._root.keys()

    def value(self, values: Mapping[Key, Any]) -> Any:
        """Evaluate without computing any derivative."""
        return self._root.value(values)

    def augmented(self, values: Mapping[Key, Any]) -> Augmented:
        return self._root.augmented(values)

    def value_and_jacobians(self, values: Mapping[Key, Any]) -> Tuple[Any, JacobianMap]:
        """Evaluate and return ``(value, {key: d(value)/d(key)})``."""
        result = self._root.augmented(values)
        return result.value(), result.jacobians()

    def __repr__(self) -> str:
        keys = sorted(self.keys())
        return f"Expression({self._root.label()}, keys={keys})"


def _root_of(expression: Expression, position: int) -> ExpressionNode:
    if not isinstance(expression, Expression):
        raise MalformedGraph(
            f"argument {position} must be an Expression, got {type(expression).__name__}"
        )
    return expression.root


def constant(value: Any) -> Expression:
    """Expression with a fixed value and no dependencies."""
    return Expression(ConstantNode(value))


def leaf(key: Key) -> Expression:
    """Expression whose value is the binding of ``key``."""
    return Expression(LeafNode(key))


def compose1(function: Primitive, e: Expression) -> Expression:
    """``function(e)``"""
    node = UnaryNode(function, _root_of(e, 1))
    logger.debug("built %s over keys %s", node.label(), sorted(node.keys()))
    return Expression(node)


def compose2(function: Primitive, e1: Expression, e2: Expression) -> Expression:
    """``function(e1, e2)``"""
    node = BinaryNode(function, _root_of(e1, 1), _root_of(e2, 2))
    logger.debug("built %s over keys %s", node.label(), sorted(node.keys()))
    return Expression(node)


def compose3(
    function: Primitive,
    e1: Expression,
    e2: Expression,
    e3: Expression,
) -> Expression:
    """``function(e1, e2, e3)``"""
    node = TernaryNode(function, _root_of(e1, 1), _root_of(e2, 2), _root_of(e3, 3))
    logger.debug("built %s over keys %s", node.label(), sorted(node.keys()))
    return Expression(node)
