"""
Output Node - Collects the final image(s) or video of a workflow.

The node passes what it received through to its state so the caller
finds the results of a run in one place.
"""

from __future__ import annotations

from typing import Any

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.core.node_types import (
    InputDefinition,
    Multiplicity,
    NodeCategory,
    NodeType,
    NodeVariant,
    ParameterDefinition,
)


async def output_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Pass received images and video through for the result collector."""
    result: dict[str, Any] = {}
    if inputs.get("image"):
        result["image"] = list(inputs["image"])
    if inputs.get("video") is not None:
        result["video"] = inputs["video"]
    return result


OUTPUT_NODE = NodeType(
    variant=NodeVariant.OUTPUT,
    name="Output",
    description="Final result of the workflow",
    category=NodeCategory.OUTPUT,
    inputs=[
        InputDefinition(
            name="image",
            label="Images",
            kind=HandleKind.IMAGE,
            multiplicity=Multiplicity.MULTIPLE,
            required=False,
        ),
        InputDefinition(
            name="video",
            label="Video",
            kind=HandleKind.VIDEO,
            required=False,
        ),
    ],
    outputs=[],  # Terminal node - no outputs
    require_any_of=("image", "video"),
    parameters=[
        ParameterDefinition.text(
            name="outputFilename",
            label="Filename",
            description="Suggested filename when the result is saved",
        ),
    ],
    executor=output_executor,
)


def register_output_nodes():
    """Register output node types."""
    from ai_media_flow.core.node_types import register_node

    register_node(OUTPUT_NODE)
