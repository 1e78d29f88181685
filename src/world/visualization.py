# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""
Visualization utilities for expression graphs.

Expressions are DAGs: a sub-expression used by several parents is a single
node with several outgoing edges. This module renders that structure so
shared sub-graphs and the keys feeding a measurement model can be inspected.

The pipeline has two steps:

1. **Exporting graph data**
   `export_expression_for_vis()` walks the graph once, visiting each
   distinct node a single time, and returns `VisNode` / `VisEdge` lists.
   Nodes are placed in layers by height (leaves and constants at 0, the
   root on top).

2. **2D rendering**
   `plot_expression_graph()` draws the layered DAG with Matplotlib, coloring
   nodes by kind.

Module contents:
    - `VisNode`: node container (kind, label, layer, position).
    - `VisEdge`: edge from a child to its parent, tagged with the argument slot.
    - `export_expression_for_vis()`: Expression -> vis nodes & edges.
    - `plot_expression_graph()`: Matplotlib rendering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from ..core.expression import Expression
from ..core.expression_node import ExpressionNode

NODE_COLORS: Dict[str, str] = {
    "constant": "tab:gray",
    "leaf": "tab:green",
    "unary": "tab:blue",
    "binary": "tab:orange",
    "ternary": "tab:red",
}


@dataclass
class VisNode:
    """Lightweight node representation for visualization."""
    id: int
    kind: str
    label: str
    layer: int
    position: np.ndarray  # shape (2,)


@dataclass
class VisEdge:
    """Child -> parent edge; ``slot`` is the argument position in the parent."""
    child: int
    parent: int
    slot: int


def export_expression_for_vis(expression: Expression) -> Tuple[List[VisNode], List[VisEdge]]:
    """
    Export an expression DAG into a visualization-friendly node/edge list.

    Node ids are assigned in post-order, so the root always has the largest id.
    """
    ids: Dict[int, int] = {}
    layers: Dict[int, int] = {}
    order: List[ExpressionNode] = []
    edges: List[VisEdge] = []

    def visit(node: ExpressionNode) -> int:
        if id(node) in ids:
            return ids[id(node)]
        child_ids = [visit(child) for child in node.children()]
        nid = len(order)
        ids[id(node)] = nid
        order.append(node)
        layers[nid] = 1 + max((layers[c] for c in child_ids), default=-1)
        for slot, cid in enumerate(child_ids):
            edges.append(VisEdge(child=cid, parent=nid, slot=slot))
        return nid

    visit(expression.root)

    # spread each layer horizontally
    per_layer: Dict[int, List[int]] = {}
    for nid in range(len(order)):
        per_layer.setdefault(layers[nid], []).append(nid)

    nodes: List[VisNode] = []
    for nid, node in enumerate(order):
        layer = layers[nid]
        members = per_layer[layer]
        x = members.index(nid) - 0.5 * (len(members) - 1)
        nodes.append(
            VisNode(
                id=nid,
                kind=node.kind,
                label=node.label(),
                layer=layer,
                position=np.array([x, float(layer)]),
            )
        )
    return nodes, edges


def plot_expression_graph(
    expression: Expression,
    ax: Optional[plt.Axes] = None,
    show_labels: bool = True,
    title: str = "Expression graph",
) -> plt.Axes:
    """Draw ``expression`` as a layered DAG; returns the Matplotlib axes."""
    nodes, edges = export_expression_for_vis(expression)
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 4))

    positions = {n.id: n.position for n in nodes}
    for e in edges:
        p0, p1 = positions[e.child], positions[e.parent]
        ax.plot([p0[0], p1[0]], [p0[1], p1[1]], color="black", linewidth=0.8, zorder=1)

    for kind, color in NODE_COLORS.items():
        members = [n for n in nodes if n.kind == kind]
        if not members:
            continue
        xy = np.stack([n.position for n in members])
        ax.scatter(xy[:, 0], xy[:, 1], s=120, c=color, label=kind, zorder=2)

    if show_labels:
        for n in nodes:
            ax.annotate(
                n.label,
                xy=(n.position[0], n.position[1]),
                xytext=(4, 4),
                textcoords="offset points",
                fontsize=8,
            )

    ax.set_title(title)
    ax.set_ylabel("height")
    ax.set_xticks([])
    ax.legend(loc="best", fontsize=8)
    return ax
