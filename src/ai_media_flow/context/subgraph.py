"""
Subgraph Extraction - Focus on a selection, summarise the rest.

When nodes are selected, an assistant gets the selected nodes and the
edges between them in full, plus a small summary of everything else: how
many nodes, of which types, and which edges cross the selection boundary.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from ai_media_flow.context.summary import handle_kind, summarize_node
from ai_media_flow.core.graph import Edge, Graph, Node, NodeId
from ai_media_flow.core.node_types import NodeRegistry


@dataclass
class BoundaryConnection:
    """An edge with exactly one endpoint in the selection."""
    direction: str  # "incoming" or "outgoing", relative to the selection
    selected_node_id: NodeId
    other_node_id: NodeId
    handle_kind: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction,
            "selectedNodeId": self.selected_node_id,
            "otherNodeId": self.other_node_id,
            "handleKind": self.handle_kind,
        }


@dataclass
class RestSummary:
    """Aggregate of the unselected part of the graph."""
    node_count: int = 0
    type_breakdown: dict[str, int] = field(default_factory=dict)
    boundary_connections: list[BoundaryConnection] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeCount": self.node_count,
            "typeBreakdown": dict(self.type_breakdown),
            "boundaryConnections": [b.to_dict() for b in self.boundary_connections],
        }


@dataclass
class SubgraphResult:
    """
    Attributes:
        selected_nodes: Selected nodes, or every node when unscoped
        selected_edges: Edges with both ends selected, or every edge
        rest_summary: Summary of the complement; None when unscoped
        is_scoped: True when a non-empty selection was applied
    """
    selected_nodes: list[Node]
    selected_edges: list[Edge]
    rest_summary: RestSummary | None
    is_scoped: bool

    def to_dict(self, registry: NodeRegistry | None = None) -> dict[str, Any]:
        """JSON-safe form. Nodes are summarised, so no payloads leak."""
        return {
            "selectedNodes": [summarize_node(n, registry).to_dict() for n in self.selected_nodes],
            "selectedEdges": [e.to_dict() for e in self.selected_edges],
            "restSummary": self.rest_summary.to_dict() if self.rest_summary else None,
            "isScoped": self.is_scoped,
        }


def extract_subgraph(
    graph: Graph,
    selected_node_ids: Iterable[str],
    registry: NodeRegistry | None = None,
) -> SubgraphResult:
    """
    Split a graph into the selected subgraph and a summary of the rest.

    Ids not present in the graph are ignored; a selection with no known id
    is treated as no selection.
    """
    nodes = graph.nodes
    selected = {NodeId(node_id) for node_id in selected_node_ids if node_id in nodes}

    if not selected:
        return SubgraphResult(
            selected_nodes=list(nodes.values()),
            selected_edges=graph.edges,
            rest_summary=None,
            is_scoped=False,
        )

    selected_edges: list[Edge] = []
    boundary: list[BoundaryConnection] = []
    for edge in graph.edges:
        source_in = edge.source_node_id in selected
        target_in = edge.target_node_id in selected
        if source_in and target_in:
            selected_edges.append(edge)
        elif target_in:
            boundary.append(BoundaryConnection(
                "incoming", edge.target_node_id, edge.source_node_id,
                handle_kind(graph, edge, registry),
            ))
        elif source_in:
            boundary.append(BoundaryConnection(
                "outgoing", edge.source_node_id, edge.target_node_id,
                handle_kind(graph, edge, registry),
            ))

    rest = [node for node_id, node in nodes.items() if node_id not in selected]
    return SubgraphResult(
        selected_nodes=[node for node_id, node in nodes.items() if node_id in selected],
        selected_edges=selected_edges,
        rest_summary=RestSummary(
            node_count=len(rest),
            type_breakdown=dict(Counter(node.type_name for node in rest)),
            boundary_connections=boundary,
        ),
        is_scoped=True,
    )


def format_subgraph_for_prompt(
    result: SubgraphResult, registry: NodeRegistry | None = None
) -> str:
    """Render a SubgraphResult as text for an assistant's system prompt."""
    if not result.selected_nodes:
        return "The canvas is currently empty."

    if result.is_scoped:
        lines = [f"The user selected {len(result.selected_nodes)} node(s):"]
    else:
        lines = [f"Current workflow has {len(result.selected_nodes)} node(s):"]

    for node in result.selected_nodes:
        summary = summarize_node(node, registry)
        model_info = f" ({summary.model})" if summary.model else ""
        lines.append(f"  - {summary.id}: {summary.title}{model_info}")

    if result.selected_edges:
        lines.append("")
        lines.append("Connections:")
        for edge in result.selected_edges:
            lines.append(
                f"  - {edge.source_node_id} -> {edge.target_node_id} ({edge.source_handle})"
            )

    rest = result.rest_summary
    if rest is not None and rest.node_count:
        breakdown = ", ".join(
            f"{count} {node_type}" for node_type, count in sorted(rest.type_breakdown.items())
        )
        lines.append("")
        lines.append(f"The rest of the workflow has {rest.node_count} node(s): {breakdown}")
    if rest is not None and rest.boundary_connections:
        lines.append("Connections crossing the selection:")
        for b in rest.boundary_connections:
            if b.direction == "incoming":
                lines.append(f"  - {b.other_node_id} -> {b.selected_node_id} ({b.handle_kind})")
            else:
                lines.append(f"  - {b.selected_node_id} -> {b.other_node_id} ({b.handle_kind})")

    return "\n".join(lines)
