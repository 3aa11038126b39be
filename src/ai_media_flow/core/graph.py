"""
Node Graph Model - Core data structures for the node-based workflow.

This module defines the fundamental building blocks:
- Node: A single processing unit with a type and configuration
- Edge: A link from a node's output handle to another node's input handle
- Group: A named set of nodes that can be locked as a whole
- Graph: The complete graph containing nodes, edges and groups

The graph is built by the editor; the execution core treats it as
read-only for the duration of a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, NewType
from uuid import uuid4

from ai_media_flow.core.node_types import NodeVariant


# Type aliases for clarity
NodeId = NewType("NodeId", str)
EdgeId = NewType("EdgeId", str)
GroupId = NewType("GroupId", str)


def new_node_id() -> NodeId:
    """Generate a new unique node ID."""
    return NodeId(uuid4().hex)


def edge_id_for(
    source: str,
    target: str,
    source_handle: str,
    target_handle: str,
) -> EdgeId:
    """Edge ids follow the editor's ``edge-{source}-{target}-{sh}-{th}`` pattern."""
    return EdgeId(f"edge-{source}-{target}-{source_handle}-{target_handle}")


@dataclass
class Edge:
    """
    A connection between two nodes.

    Connects an output handle of one node to an input handle of another.
    """
    id: EdgeId
    source_node_id: NodeId
    source_handle: str
    target_node_id: NodeId
    target_handle: str

    @classmethod
    def create(
        cls,
        source_node: str,
        source_handle: str,
        target_node: str,
        target_handle: str,
    ) -> Edge:
        """Factory method to create a new edge."""
        return cls(
            id=edge_id_for(source_node, target_node, source_handle, target_handle),
            source_node_id=NodeId(source_node),
            source_handle=source_handle,
            target_node_id=NodeId(target_node),
            target_handle=target_handle,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source_node_id,
            "sourceHandle": self.source_handle,
            "target": self.target_node_id,
            "targetHandle": self.target_handle,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        source = data["source"]
        target = data["target"]
        source_handle = data.get("sourceHandle") or ""
        target_handle = data.get("targetHandle") or ""
        return cls(
            id=EdgeId(data.get("id") or edge_id_for(source, target, source_handle, target_handle)),
            source_node_id=NodeId(source),
            source_handle=source_handle,
            target_node_id=NodeId(target),
            target_handle=target_handle,
        )


@dataclass
class Node:
    """
    A single node in the processing graph.

    ``type`` is kept as given by the editor; it is a NodeVariant when the
    type is known and the raw string otherwise, so the validator can
    report unknown types instead of failing on construction.
    """
    id: NodeId
    type: NodeVariant | str
    data: dict[str, Any] = field(default_factory=dict)
    group_id: GroupId | None = None

    @classmethod
    def create(
        cls,
        node_type: NodeVariant | str,
        data: dict[str, Any] | None = None,
        node_id: str | None = None,
        group_id: str | None = None,
    ) -> Node:
        """Factory method to create a new node."""
        return cls(
            id=NodeId(node_id) if node_id else new_node_id(),
            type=NodeVariant.parse(node_type) or node_type,
            data=dict(data or {}),
            group_id=GroupId(group_id) if group_id else None,
        )

    @property
    def variant(self) -> NodeVariant | None:
        return NodeVariant.parse(self.type)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, NodeVariant) else str(self.type)

    @property
    def custom_title(self) -> str | None:
        return self.data.get("customTitle") or None

    def get_parameter(self, name: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.data.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type_name,
            "data": dict(self.data),
        }
        if self.group_id:
            result["groupId"] = self.group_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls.create(
            data["type"],
            data=data.get("data"),
            node_id=data["id"],
            group_id=data.get("groupId"),
        )


@dataclass
class Group:
    """
    A grouping of nodes.

    When ``locked`` is set every member is skipped at execution time,
    regardless of input availability.
    """
    id: GroupId
    name: str = ""
    locked: bool = False
    member_node_ids: set[NodeId] = field(default_factory=set)

    @classmethod
    def create(
        cls,
        name: str,
        node_ids: Iterable[str] | None = None,
        locked: bool = False,
        group_id: str | None = None,
    ) -> Group:
        """Factory method to create a new group."""
        return cls(
            id=GroupId(group_id or uuid4().hex),
            name=name,
            locked=locked,
            member_node_ids={NodeId(n) for n in node_ids or ()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "locked": self.locked,
            "nodeIds": sorted(self.member_node_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Group:
        return cls.create(
            data.get("name", ""),
            node_ids=data.get("nodeIds", ()),
            locked=bool(data.get("locked", False)),
            group_id=data["id"],
        )


class Graph:
    """
    The complete node graph.

    Contains nodes, edges between them, and optional groupings.
    Provides methods for graph analysis and execution ordering.
    """

    def __init__(self, name: str = "Untitled"):
        self.name: str = name
        self._nodes: dict[NodeId, Node] = {}
        self._edges: list[Edge] = []
        self._groups: dict[GroupId, Group] = {}

    # --- Node operations ---

    @property
    def nodes(self) -> dict[NodeId, Node]:
        """Get all nodes (read-only view)."""
        return self._nodes.copy()

    def add_node(self, node: Node) -> Node:
        """Add a node to the graph."""
        self._nodes[node.id] = node
        return node

    def remove_node(self, node_id: NodeId) -> Node | None:
        """
        Remove a node and all its edges.

        Returns the removed node, or None if not found.
        """
        node = self._nodes.pop(node_id, None)
        if node:
            self._edges = [
                edge for edge in self._edges
                if edge.source_node_id != node_id and edge.target_node_id != node_id
            ]
            for group in self._groups.values():
                group.member_node_ids.discard(node_id)
        return node

    def get_node(self, node_id: NodeId) -> Node | None:
        """Get a node by ID."""
        return self._nodes.get(node_id)

    # --- Edge operations ---

    @property
    def edges(self) -> list[Edge]:
        """Get all edges (read-only copy)."""
        return self._edges.copy()

    def add_edge(self, edge: Edge) -> Edge:
        """
        Add an edge to the graph.

        No structural checks are made here; the validator reports dangling
        references, kind mismatches and cycles for the whole graph.
        """
        self._edges.append(edge)
        return edge

    def connect(
        self,
        source_node: str,
        source_handle: str,
        target_node: str,
        target_handle: str,
    ) -> Edge:
        """Create and add an edge in one step."""
        return self.add_edge(Edge.create(source_node, source_handle, target_node, target_handle))

    def remove_edge(self, edge_id: EdgeId) -> Edge | None:
        """Remove an edge by ID."""
        for i, edge in enumerate(self._edges):
            if edge.id == edge_id:
                return self._edges.pop(i)
        return None

    def incoming_edges(self, node_id: NodeId, handle: str | None = None) -> list[Edge]:
        """Get the edges feeding a node, optionally restricted to one input handle."""
        return [
            edge for edge in self._edges
            if edge.target_node_id == node_id
            and (handle is None or edge.target_handle == handle)
        ]

    def outgoing_edges(self, node_id: NodeId, handle: str | None = None) -> list[Edge]:
        """Get the edges leaving a node, optionally restricted to one output handle."""
        return [
            edge for edge in self._edges
            if edge.source_node_id == node_id
            and (handle is None or edge.source_handle == handle)
        ]

    # --- Graph analysis ---

    def get_execution_order(self) -> list[NodeId]:
        """
        Get nodes in topological order for execution.

        Nodes with no dependencies come first, followed by nodes
        that depend on them, and so on.

        Raises:
            ValueError: If the graph contains a cycle.
        """
        dependencies: dict[NodeId, set[NodeId]] = {
            node_id: set() for node_id in self._nodes
        }

        for edge in self._edges:
            if edge.target_node_id in dependencies and edge.source_node_id in self._nodes:
                dependencies[edge.target_node_id].add(edge.source_node_id)

        # Kahn's algorithm for topological sort
        result: list[NodeId] = []
        no_deps = [nid for nid, deps in dependencies.items() if not deps]

        while no_deps:
            node_id = no_deps.pop(0)
            result.append(node_id)

            for nid, deps in dependencies.items():
                if node_id in deps:
                    deps.remove(node_id)
                    if not deps and nid not in result and nid not in no_deps:
                        no_deps.append(nid)

        if len(result) != len(self._nodes):
            raise ValueError("Graph contains a cycle")

        return result

    def get_upstream_nodes(self, node_id: NodeId) -> set[NodeId]:
        """Get all nodes that this node depends on (directly or indirectly)."""
        upstream: set[NodeId] = set()
        to_visit = [node_id]

        while to_visit:
            current = to_visit.pop()
            for edge in self._edges:
                if edge.target_node_id == current:
                    source_id = edge.source_node_id
                    if source_id not in upstream:
                        upstream.add(source_id)
                        to_visit.append(source_id)

        return upstream

    def get_downstream_nodes(self, node_id: NodeId) -> set[NodeId]:
        """Get all nodes that depend on this node (directly or indirectly)."""
        downstream: set[NodeId] = set()
        to_visit = [node_id]

        while to_visit:
            current = to_visit.pop()
            for edge in self._edges:
                if edge.source_node_id == current:
                    target_id = edge.target_node_id
                    if target_id not in downstream:
                        downstream.add(target_id)
                        to_visit.append(target_id)

        return downstream

    # --- Group operations ---

    @property
    def groups(self) -> dict[GroupId, Group]:
        """Get all groups (read-only copy)."""
        return self._groups.copy()

    def add_group(self, group: Group) -> Group:
        """Add a group to the graph."""
        self._groups[group.id] = group
        return group

    def remove_group(self, group_id: GroupId) -> Group | None:
        """Remove a group (does not remove the nodes)."""
        return self._groups.pop(group_id, None)

    def groups_of(self, node_id: NodeId) -> list[Group]:
        """Groups a node belongs to, by back-reference or membership."""
        node = self._nodes.get(node_id)
        back_ref = node.group_id if node else None
        return [
            group for group in self._groups.values()
            if group.id == back_ref or node_id in group.member_node_ids
        ]

    def is_locked(self, node_id: NodeId) -> bool:
        """True if the node is a member of any locked group."""
        return any(group.locked for group in self.groups_of(node_id))

    # --- Serialization of the editor's in-memory shape ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges],
            "groups": {gid: group.to_dict() for gid, group in self._groups.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str = "Untitled") -> Graph:
        """
        Build a graph from the editor's shape.

        ``groups`` may be a mapping of id -> group or a list of groups.
        """
        graph = cls(name)
        for node_data in data.get("nodes", []):
            graph.add_node(Node.from_dict(node_data))
        for edge_data in data.get("edges", []):
            graph.add_edge(Edge.from_dict(edge_data))
        groups = data.get("groups") or {}
        if isinstance(groups, dict):
            groups = list(groups.values())
        for group_data in groups:
            graph.add_group(Group.from_dict(group_data))
        return graph

    # --- Utility ---

    def clear(self) -> None:
        """Remove all nodes, edges, and groups."""
        self._nodes.clear()
        self._edges.clear()
        self._groups.clear()

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def __contains__(self, node_id: NodeId) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes
