"""
Node Type System - Definitions and registry for node types.

This module defines how node types are specified:
- NodeVariant: The closed set of node types a graph may contain
- InputDefinition: Describes an input handle
- OutputDefinition: Describes an output handle
- ParameterDefinition: Describes a configurable value in ``node.data``
- NodeType: Complete definition of a node type
- NodeRegistry: Global registry mapping each variant to its definition
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from ai_media_flow.core.data_types import HandleKind, ParameterValue


class NodeVariant(str, Enum):
    """Every node type understood by the core."""
    INPUT = "input"
    PROMPT = "prompt"
    GENERATE_IMAGE = "generate-image"
    GENERATE_VIDEO = "generate-video"
    GENERATE_TEXT = "generate-text"
    ANNOTATE = "annotate"
    SPLIT = "split"
    OUTPUT = "output"

    @classmethod
    def parse(cls, value: str | NodeVariant) -> NodeVariant | None:
        """Return the variant for ``value``, or None if it is unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class NodeCategory(Enum):
    """Categories for organizing nodes."""
    INPUT = "input"
    GENERATION = "generation"
    UTILITY = "utility"
    OUTPUT = "output"


class Multiplicity(Enum):
    """How many edges may target an input handle."""
    SINGLE = "single"
    MULTIPLE = "multiple"


class ParameterType(Enum):
    """Types of node parameters."""
    TEXT = "text"
    TEXT_MULTILINE = "text_multiline"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ENUM = "enum"
    MODEL = "model"
    LIST = "list"


@dataclass
class InputDefinition:
    """
    Definition of an input handle on a node.

    Attributes:
        name: Handle identifier (matches ``edge.target_handle``)
        label: Display label
        kind: Kind of value accepted
        multiplicity: Whether more than one edge may target this handle
        required: If True, the node cannot run unless this handle is fed
            by at least one succeeded producer
    """
    name: str
    label: str
    kind: HandleKind
    multiplicity: Multiplicity = Multiplicity.SINGLE
    required: bool = True
    description: str = ""

    @property
    def accepts_many(self) -> bool:
        return self.multiplicity is Multiplicity.MULTIPLE


@dataclass
class OutputDefinition:
    """
    Definition of an output handle on a node.

    Attributes:
        name: Handle identifier (matches ``edge.source_handle``)
        label: Display label
        kind: Kind of value produced
        sequence: True if the produced value is a list of values; such an
            output may only feed inputs with MULTIPLE multiplicity
    """
    name: str
    label: str
    kind: HandleKind
    sequence: bool = False
    description: str = ""


@dataclass
class EnumOption:
    """A single option in an enum parameter."""
    value: str
    label: str


@dataclass
class ParameterDefinition:
    """
    Definition of a configurable parameter on a node.

    Parameters are the editor-supplied values in ``node.data``.
    Unlike inputs, they don't come from connections.
    """
    name: str
    label: str
    param_type: ParameterType
    default: ParameterValue = None
    min_value: float | None = None
    max_value: float | None = None
    options: list[EnumOption] = field(default_factory=list)
    description: str = ""

    @classmethod
    def text(
        cls,
        name: str,
        label: str,
        default: str = "",
        multiline: bool = False,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for text parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.TEXT_MULTILINE if multiline else ParameterType.TEXT,
            default=default,
            description=description,
        )

    @classmethod
    def integer(
        cls,
        name: str,
        label: str,
        default: int = 0,
        min_value: int | None = None,
        max_value: int | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for integer parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.INTEGER,
            default=default,
            min_value=min_value,
            max_value=max_value,
            description=description,
        )

    @classmethod
    def float_param(
        cls,
        name: str,
        label: str,
        default: float = 0.0,
        min_value: float | None = None,
        max_value: float | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for float parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.FLOAT,
            default=default,
            min_value=min_value,
            max_value=max_value,
            description=description,
        )

    @classmethod
    def enum(
        cls,
        name: str,
        label: str,
        options: list[tuple[str, str]],  # [(value, label), ...]
        default: str | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for enum parameter."""
        enum_options = [EnumOption(v, l) for v, l in options]
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.ENUM,
            default=default or (options[0][0] if options else None),
            options=enum_options,
            description=description,
        )

    @classmethod
    def model(
        cls,
        name: str = "model",
        label: str = "Model",
        default: str | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for a model selector (a model card id)."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.MODEL,
            default=default,
            description=description,
        )


@runtime_checkable
class NodeExecutor(Protocol):
    """Protocol for node execution functions."""

    async def __call__(
        self,
        inputs: dict[str, Any],
        parameters: dict[str, Any],
        context: Any,
    ) -> dict[str, Any]:
        """
        Execute the node.

        Args:
            inputs: Collected input values by handle name. MULTIPLE handles
                receive a list; unfed optional handles are absent.
            parameters: Node data merged over the parameter defaults
            context: Dispatch context with access to providers and credentials

        Returns:
            Dictionary of output values by handle name
        """
        ...


@dataclass
class NodeType:
    """
    Complete definition of a node type.

    NodeTypes are templates that define what a node does, its handles,
    its minimum-input contract and the ceiling on a single dispatch.
    """
    variant: NodeVariant
    name: str  # Display name, also the default title of a node
    category: NodeCategory
    description: str = ""

    inputs: list[InputDefinition] = field(default_factory=list)
    outputs: list[OutputDefinition] = field(default_factory=list)
    parameters: list[ParameterDefinition] = field(default_factory=list)

    # At least one of these inputs must be fed (in addition to `required`)
    require_any_of: tuple[str, ...] = ()

    # Kind of content produced by a remote backend; None for local nodes
    generates: HandleKind | None = None

    # Dispatch ceiling in seconds; None uses the engine default
    timeout: float | None = None

    executor: NodeExecutor | None = None

    @property
    def id(self) -> str:
        return self.variant.value

    @property
    def is_generation(self) -> bool:
        return self.generates is not None

    def get_input(self, name: str) -> InputDefinition | None:
        """Get an input definition by name."""
        for inp in self.inputs:
            if inp.name == name:
                return inp
        return None

    def get_output(self, name: str) -> OutputDefinition | None:
        """Get an output definition by name."""
        for out in self.outputs:
            if out.name == name:
                return out
        return None

    def get_parameter(self, name: str) -> ParameterDefinition | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def get_default_parameters(self) -> dict[str, ParameterValue]:
        """Get default values for all parameters."""
        return {p.name: p.default for p in self.parameters}

    def required_inputs(self) -> list[InputDefinition]:
        return [inp for inp in self.inputs if inp.required]


class NodeRegistry:
    """
    Global registry of available node types.

    Node modules register their types at startup; the validator, the
    scheduler and the dispatcher all resolve variants through it.
    """

    _instance: NodeRegistry | None = None

    def __new__(cls) -> NodeRegistry:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._types = {}
        return cls._instance

    @classmethod
    def instance(cls) -> NodeRegistry:
        """Get the singleton instance."""
        return cls()

    def __init__(self):
        if not hasattr(self, '_types'):
            self._types: dict[NodeVariant, NodeType] = {}

    def register(self, node_type: NodeType) -> None:
        """Register a node type."""
        self._types[node_type.variant] = node_type

    def unregister(self, variant: NodeVariant | str) -> NodeType | None:
        """Unregister a node type."""
        parsed = NodeVariant.parse(variant)
        if parsed is None:
            return None
        return self._types.pop(parsed, None)

    def get(self, variant: NodeVariant | str) -> NodeType | None:
        """Get a node type by variant (or its string value)."""
        parsed = NodeVariant.parse(variant)
        if parsed is None:
            return None
        return self._types.get(parsed)

    def get_all(self) -> list[NodeType]:
        """Get all registered node types."""
        return list(self._types.values())

    def list_by_category(self, category: NodeCategory) -> list[NodeType]:
        """Get all node types in a category."""
        return [t for t in self._types.values() if t.category == category]

    def clear(self) -> None:
        """Remove all registered types (for testing)."""
        self._types.clear()

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, variant: NodeVariant | str) -> bool:
        parsed = NodeVariant.parse(variant)
        return parsed is not None and parsed in self._types


def register_node(node_type: NodeType) -> NodeType:
    """
    Register a node type with the global registry.

    Returns the node type so it can be used at module level:
        PROMPT_NODE = register_node(NodeType(...))
    """
    NodeRegistry.instance().register(node_type)
    return node_type


def node_title(variant: NodeVariant | str) -> str:
    """Human-readable default title for a node type."""
    node_type = NodeRegistry.instance().get(variant)
    if node_type is not None:
        return node_type.name
    return str(variant.value if isinstance(variant, NodeVariant) else variant)
