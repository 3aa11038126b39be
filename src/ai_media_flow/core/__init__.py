"""
Core module - Graph model, node types, validation and engine settings.

This module provides the fundamental building blocks for AI Media Flow:
- Graph: Nodes, edges and groups
- Data Types: Values carried along edges
- Node Types: Node definitions and registry
- Validation: Structural checks run before execution
- Settings: Engine configuration

The execution engine lives in ``ai_media_flow.core.execution`` and is
imported from there directly.
"""

from ai_media_flow.core.graph import (
    Edge,
    EdgeId,
    Graph,
    Group,
    GroupId,
    Node,
    NodeId,
    edge_id_for,
    new_node_id,
)

from ai_media_flow.core.data_types import (
    HandleKind,
    ImageData,
    ImageMetadata,
    ParameterValue,
    VideoData,
)

from ai_media_flow.core.node_types import (
    InputDefinition,
    Multiplicity,
    NodeCategory,
    NodeExecutor,
    NodeRegistry,
    NodeType,
    NodeVariant,
    OutputDefinition,
    ParameterDefinition,
    ParameterType,
    node_title,
    register_node,
)

from ai_media_flow.core.validation import (
    GraphValidationError,
    IssueKind,
    Severity,
    ValidationIssue,
    ValidationResult,
    find_cycle,
    validate,
)

from ai_media_flow.core.settings import (
    EngineSettings,
    load_settings,
    save_settings,
)


__all__ = [
    # graph.py
    "Edge",
    "EdgeId",
    "Graph",
    "Group",
    "GroupId",
    "Node",
    "NodeId",
    "edge_id_for",
    "new_node_id",
    # data_types.py
    "HandleKind",
    "ImageData",
    "ImageMetadata",
    "ParameterValue",
    "VideoData",
    # node_types.py
    "InputDefinition",
    "Multiplicity",
    "NodeCategory",
    "NodeExecutor",
    "NodeRegistry",
    "NodeType",
    "NodeVariant",
    "OutputDefinition",
    "ParameterDefinition",
    "ParameterType",
    "node_title",
    "register_node",
    # validation.py
    "GraphValidationError",
    "IssueKind",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "find_cycle",
    "validate",
    # settings.py
    "EngineSettings",
    "load_settings",
    "save_settings",
]
