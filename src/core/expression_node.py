# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Expression graph nodes.

An :class:`~factor_expr.core.expression.Expression` holds a reference to an
:class:`ExpressionNode` that does the actual work. There are exactly five
node kinds:

    ConstantNode   fixed value, depends on nothing
    LeafNode       value of one variable, looked up in the bindings
    UnaryNode      f(a)
    BinaryNode     f(a1, a2)
    TernaryNode    f(a1, a2, a3)

Function nodes wrap a *primitive*: a callable that evaluates the function
and, on request, its local Jacobians. The calling convention is::

    f(a1, ..., an)                          -> value
    f(a1, ..., an, derivatives=(b1, ..., bn)) -> (value, (H1, ..., Hn))

where ``Hi`` is d(value)/d(ai), shaped ``dim(value) x dim(ai)``, when ``bi``
is true, and ``None`` otherwise. A node asks only for the Jacobians of
children that actually depend on a variable; when every child is constant
the value-only form is used and no derivative work happens at all.

Nodes are immutable after construction and hold no evaluation state, so a
graph may be shared between expressions and evaluated from several threads.
Children are visited once per path that reaches them; nothing is memoized
across paths.
"""

from __future__ import annotations

from typing import Any, Callable, FrozenSet, Mapping, Sequence, Tuple

from .augmented import Augmented
from .errors import MalformedGraph
from .types import Key, lookup

Primitive = Callable[..., Any]


def call_primitive(
    function: Primitive,
    arguments: Sequence[Any],
    requested: Tuple[bool, ...],
) -> Tuple[Any, Tuple[Any, ...]]:
    """Invoke ``function`` asking for the Jacobians flagged in ``requested``."""
    result = function(*arguments, derivatives=requested)
    try:
        value, jacobians = result
        jacobians = tuple(jacobians)
    except (TypeError, ValueError):
        raise MalformedGraph(
            f"primitive {_name(function)} must return (value, jacobians) "
            "when derivatives are requested"
        ) from None
    if len(jacobians) != len(arguments):
        raise MalformedGraph(
            f"primitive {_name(function)} returned {len(jacobians)} Jacobian "
            f"slots for {len(arguments)} arguments"
        )
    return value, jacobians


def _name(function: Primitive) -> str:
    return getattr(function, "__name__", type(function).__name__)


class ExpressionNode:
    """Base class of the five node kinds. Not meant to be subclassed elsewhere."""

    __slots__ = ("_keys",)

    kind: str = "node"

    def keys(self) -> FrozenSet[Key]:
        """Variables reachable from this node."""
        return self._keys

    def children(self) -> Tuple["ExpressionNode", ...]:
        return ()

    def value(self, values: Mapping[Key, Any]) -> Any:
        raise NotImplementedError

    def augmented(self, values: Mapping[Key, Any]) -> Augmented:
        raise NotImplementedError

    def label(self) -> str:
        return self.kind


class ConstantNode(ExpressionNode):
    __slots__ = ("_constant",)

    kind = "constant"

    def __init__(self, value: Any) -> None:
        self._constant = value
        self._keys = frozenset()

    def value(self, values: Mapping[Key, Any]) -> Any:
        return self._constant

    def augmented(self, values: Mapping[Key, Any]) -> Augmented:
        return Augmented(self._constant)


class LeafNode(ExpressionNode):
    __slots__ = ("_key",)

    kind = "leaf"

    def __init__(self, key: Key) -> None:
        self._key = key
        self._keys = frozenset((key,))

    @property
    def key(self) -> Key:
        return self._key

    def value(self, values: Mapping[Key, Any]) -> Any:
        return lookup(values, self._key)

    def augmented(self, values: Mapping[Key, Any]) -> Augmented:
        return Augmented.seeded(self.value(values), self._key)

    def label(self) -> str:
        return f"leaf({self._key!r})"


class FunctionNode(ExpressionNode):
    """
    Application of a primitive to one, two or three child nodes.

    UnaryNode, BinaryNode and TernaryNode only fix the arity; evaluation is
    shared here so that every argument's contribution goes through the same
    merge.
    """

    __slots__ = ("_function", "_children")

    arity: int = 0

    def __init__(self, function: Primitive, *children: ExpressionNode) -> None:
        if len(children) != self.arity:
            raise MalformedGraph(
                f"{type(self).__name__} takes {self.arity} arguments, got {len(children)}"
            )
        for child in children:
            if not isinstance(child, ExpressionNode):
                raise MalformedGraph(f"argument {child!r} is not an expression node")
        if not callable(function):
            raise MalformedGraph(f"primitive {function!r} is not callable")
        self._function = function
        self._children = tuple(children)
        keys: FrozenSet[Key] = frozenset()
        for child in children:
            keys = keys | child.keys()
        self._keys = keys

    @property
    def function(self) -> Primitive:
        return self._function

    def children(self) -> Tuple[ExpressionNode, ...]:
        return self._children

    def value(self, values: Mapping[Key, Any]) -> Any:
        arguments = [child.value(values) for child in self._children]
        return self._function(*arguments)

    def augmented(self, values: Mapping[Key, Any]) -> Augmented:
        arguments = [child.augmented(values) for child in self._children]
        requested = tuple(not a.constant() for a in arguments)
        plain = [a.value() for a in arguments]
        if not any(requested):
            return Augmented(self._function(*plain))
        value, jacobians = call_primitive(self._function, plain, requested)
        return Augmented.chain(value, zip(jacobians, arguments))

    def label(self) -> str:
        return f"{self.kind}:{_name(self._function)}"


class UnaryNode(FunctionNode):
    __slots__ = ()
    kind = "unary"
    arity = 1


class BinaryNode(FunctionNode):
    __slots__ = ()
    kind = "binary"
    arity = 2


class TernaryNode(FunctionNode):
    __slots__ = ()
    kind = "ternary"
    arity = 3

