"""
Graph Validator - Structural and type checks run before any execution.

Checks run in a fixed order and stop after the first stage that reports
an error, except the kind check which reports every mismatching edge so
the editor can highlight all of them at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ai_media_flow.core.graph import Edge, Graph, NodeId
from ai_media_flow.core.node_types import NodeRegistry, NodeType


class IssueKind(str, Enum):
    UNKNOWN_NODE_TYPE = "unknown_node_type"
    DANGLING_EDGE = "dangling_edge"
    UNKNOWN_HANDLE = "unknown_handle"
    KIND_MISMATCH = "kind_mismatch"
    MULTIPLICITY = "multiplicity"
    CYCLE = "cycle"
    MISSING_REQUIRED_INPUT = "missing_required_input"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """A single problem found in a graph."""
    kind: IssueKind
    message: str
    node_id: NodeId | None = None
    edge_id: str | None = None
    severity: Severity = Severity.ERROR
    cycle: list[NodeId] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.node_id is not None:
            result["nodeId"] = self.node_id
        if self.edge_id is not None:
            result["edgeId"] = self.edge_id
        if self.cycle:
            result["cycle"] = list(self.cycle)
        return result


@dataclass
class ValidationResult:
    """Outcome of validating a graph. ``ok`` ignores warnings."""
    errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(issue.severity is Severity.ERROR for issue in self.errors)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.errors if i.severity is Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [issue.to_dict() for issue in self.errors],
        }


class GraphValidationError(Exception):
    """Raised by run_graph when the graph fails validation; nothing has run."""

    def __init__(self, result: ValidationResult):
        self.result = result
        first = next((i for i in result.errors if i.severity is Severity.ERROR), None)
        summary = first.message if first else "invalid graph"
        count = len([i for i in result.errors if i.severity is Severity.ERROR])
        super().__init__(f"Graph validation failed ({count} error(s)): {summary}")


def validate(graph: Graph, registry: NodeRegistry | None = None) -> ValidationResult:
    """
    Validate a graph.

    Returns a ValidationResult; never raises for graph problems and never
    mutates the graph.
    """
    registry = registry or NodeRegistry.instance()
    types = _resolve_types(graph, registry)

    for stage in (_check_references, _check_kinds, _check_multiplicity):
        issues = stage(graph, types)
        if issues:
            return ValidationResult(issues)

    cycle = find_cycle(graph)
    if cycle:
        path = " -> ".join([*cycle, cycle[0]])
        return ValidationResult([
            ValidationIssue(
                kind=IssueKind.CYCLE,
                message=f"Graph contains a cycle: {path}",
                node_id=cycle[0],
                cycle=cycle,
            )
        ])

    return ValidationResult(_check_required_inputs(graph, types))


def _resolve_types(graph: Graph, registry: NodeRegistry) -> dict[NodeId, NodeType | None]:
    return {node_id: registry.get(node.type) for node_id, node in graph.nodes.items()}


def _check_references(
    graph: Graph, types: dict[NodeId, NodeType | None]
) -> list[ValidationIssue]:
    nodes = graph.nodes
    for node_id, node_type in types.items():
        if node_type is None:
            return [ValidationIssue(
                kind=IssueKind.UNKNOWN_NODE_TYPE,
                message=f"Node {node_id} has unknown type '{nodes[node_id].type_name}'",
                node_id=node_id,
            )]

    for edge in graph.edges:
        for endpoint in (edge.source_node_id, edge.target_node_id):
            if endpoint not in nodes:
                return [ValidationIssue(
                    kind=IssueKind.DANGLING_EDGE,
                    message=f"Edge {edge.id} references missing node {endpoint}",
                    edge_id=edge.id,
                )]
        source_type = types[edge.source_node_id]
        target_type = types[edge.target_node_id]
        if source_type.get_output(edge.source_handle) is None:
            return [ValidationIssue(
                kind=IssueKind.UNKNOWN_HANDLE,
                message=(
                    f"Edge {edge.id}: {source_type.name} has no output "
                    f"'{edge.source_handle}'"
                ),
                node_id=edge.source_node_id,
                edge_id=edge.id,
            )]
        if target_type.get_input(edge.target_handle) is None:
            return [ValidationIssue(
                kind=IssueKind.UNKNOWN_HANDLE,
                message=(
                    f"Edge {edge.id}: {target_type.name} has no input "
                    f"'{edge.target_handle}'"
                ),
                node_id=edge.target_node_id,
                edge_id=edge.id,
            )]
    return []


def _handles(edge: Edge, types: dict[NodeId, NodeType | None]):
    output = types[edge.source_node_id].get_output(edge.source_handle)
    input_ = types[edge.target_node_id].get_input(edge.target_handle)
    return output, input_


def _check_kinds(
    graph: Graph, types: dict[NodeId, NodeType | None]
) -> list[ValidationIssue]:
    issues = []
    for edge in graph.edges:
        output, input_ = _handles(edge, types)
        if not output.kind.is_compatible_with(input_.kind):
            issues.append(ValidationIssue(
                kind=IssueKind.KIND_MISMATCH,
                message=(
                    f"Edge {edge.id} connects {output.kind.value} output "
                    f"to {input_.kind.value} input"
                ),
                node_id=edge.target_node_id,
                edge_id=edge.id,
            ))
    return issues


def _check_multiplicity(
    graph: Graph, types: dict[NodeId, NodeType | None]
) -> list[ValidationIssue]:
    seen: dict[tuple[NodeId, str], Edge] = {}
    for edge in graph.edges:
        output, input_ = _handles(edge, types)
        if input_.accepts_many:
            continue
        if output.sequence:
            return [ValidationIssue(
                kind=IssueKind.MULTIPLICITY,
                message=(
                    f"Edge {edge.id} feeds a list of values into single input "
                    f"'{edge.target_handle}' of node {edge.target_node_id}"
                ),
                node_id=edge.target_node_id,
                edge_id=edge.id,
            )]
        key = (edge.target_node_id, edge.target_handle)
        if key in seen:
            return [ValidationIssue(
                kind=IssueKind.MULTIPLICITY,
                message=(
                    f"Input '{edge.target_handle}' of node {edge.target_node_id} "
                    f"accepts one edge but has {seen[key].id} and {edge.id}"
                ),
                node_id=edge.target_node_id,
                edge_id=edge.id,
            )]
        seen[key] = edge
    return []


_WHITE, _GREY, _BLACK = 0, 1, 2


def find_cycle(graph: Graph) -> list[NodeId]:
    """
    Find a cycle using a depth-first white/grey/black colouring walk.

    Returns the node ids on the cycle in edge order, starting at the node
    where the walk re-entered the grey path, or an empty list.
    """
    nodes = graph.nodes
    successors: dict[NodeId, list[NodeId]] = {node_id: [] for node_id in nodes}
    for edge in graph.edges:
        if edge.source_node_id in successors and edge.target_node_id in nodes:
            successors[edge.source_node_id].append(edge.target_node_id)

    colour = {node_id: _WHITE for node_id in nodes}

    for root in nodes:
        if colour[root] != _WHITE:
            continue
        path: list[NodeId] = [root]
        stack = [iter(successors[root])]
        colour[root] = _GREY
        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                colour[path.pop()] = _BLACK
                continue
            if colour[child] == _GREY:
                return path[path.index(child):]
            if colour[child] == _WHITE:
                colour[child] = _GREY
                path.append(child)
                stack.append(iter(successors[child]))
    return []


def _check_required_inputs(
    graph: Graph, types: dict[NodeId, NodeType | None]
) -> list[ValidationIssue]:
    issues = []
    for node_id, node_type in types.items():
        if graph.is_locked(node_id):
            continue
        connected = {edge.target_handle for edge in graph.incoming_edges(node_id)}
        for inp in node_type.required_inputs():
            if inp.name not in connected:
                issues.append(ValidationIssue(
                    kind=IssueKind.MISSING_REQUIRED_INPUT,
                    message=f"{node_type.name} node {node_id} needs a '{inp.name}' input",
                    node_id=node_id,
                    severity=Severity.WARNING,
                ))
        if node_type.require_any_of and not connected.intersection(node_type.require_any_of):
            wanted = " or ".join(node_type.require_any_of)
            issues.append(ValidationIssue(
                kind=IssueKind.MISSING_REQUIRED_INPUT,
                message=f"{node_type.name} node {node_id} needs a {wanted} input",
                node_id=node_id,
                severity=Severity.WARNING,
            ))
    return issues
