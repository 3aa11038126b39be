"""
Graph Summary - A lightweight, payload-free description of a graph.

The summary lists every node with its title and, for generation nodes,
the model it uses, plus every connection with the kind of value it
carries. Images, prompts and other node data are never included, so the
summary is safe to hand to a third-party text model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ai_media_flow.core.graph import Edge, Graph, Node
from ai_media_flow.core.node_types import NodeRegistry, node_title
from ai_media_flow.providers.registry import ProviderRegistry


@dataclass
class NodeSummary:
    id: str
    type: str
    title: str
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {"id": self.id, "type": self.type, "title": self.title}
        if self.model:
            result["model"] = self.model
        return result


@dataclass
class ConnectionSummary:
    source: str
    target: str
    handle_kind: str

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.target, "handleKind": self.handle_kind}


@dataclass
class GraphSummary:
    """Structure-only view of a graph."""
    nodes: list[NodeSummary] = field(default_factory=list)
    connections: list[ConnectionSummary] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeCount": self.node_count,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "isEmpty": self.is_empty,
        }


def summarize_node(node: Node, registry: NodeRegistry | None = None) -> NodeSummary:
    registry = registry or NodeRegistry.instance()
    node_type = registry.get(node.type)

    model = None
    if node_type is not None and node_type.is_generation:
        model = ProviderRegistry.instance().display_name(node.data)

    return NodeSummary(
        id=node.id,
        type=node.type_name,
        title=node.custom_title or node_title(node.type),
        model=model,
    )


def handle_kind(graph: Graph, edge: Edge, registry: NodeRegistry | None = None) -> str:
    """Kind carried by an edge, from its source handle's definition."""
    registry = registry or NodeRegistry.instance()
    source = graph.get_node(edge.source_node_id)
    node_type = registry.get(source.type) if source else None
    output = node_type.get_output(edge.source_handle) if node_type else None
    if output is not None:
        return output.kind.value
    return edge.source_handle or "unknown"


def summarize(graph: Graph, registry: NodeRegistry | None = None) -> GraphSummary:
    """Build a GraphSummary of the whole graph. Pure."""
    return GraphSummary(
        nodes=[summarize_node(node, registry) for node in graph.nodes.values()],
        connections=[
            ConnectionSummary(
                edge.source_node_id, edge.target_node_id, handle_kind(graph, edge, registry)
            )
            for edge in graph.edges
        ],
    )


def format_summary_for_prompt(summary: GraphSummary) -> str:
    """Render a summary as text for an assistant's system prompt."""
    if summary.is_empty:
        return "The canvas is currently empty."

    lines = [f"Current workflow has {summary.node_count} node(s):"]
    for node in summary.nodes:
        model_info = f" ({node.model})" if node.model else ""
        lines.append(f"  - {node.id}: {node.title}{model_info}")

    if summary.connections:
        lines.append("")
        lines.append("Connections:")
        for conn in summary.connections:
            lines.append(f"  - {conn.source} -> {conn.target} ({conn.handle_kind})")

    return "\n".join(lines)
