"""
Input Nodes - Nodes that provide input data to the workflow.

These are the image input (an uploaded image or a file on disk) and the
prompt (a piece of text typed into the editor).
"""

from __future__ import annotations

from typing import Any

from ai_media_flow.core.data_types import HandleKind, ImageData, ImageMetadata
from ai_media_flow.core.node_types import (
    NodeCategory,
    NodeType,
    NodeVariant,
    OutputDefinition,
    ParameterDefinition,
    register_node,
)
from ai_media_flow.providers.base import InvalidInput


async def prompt_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute prompt node - simply passes the text parameter to output."""
    text = parameters.get("prompt") or ""
    if not isinstance(text, str):
        raise InvalidInput("Prompt must be text")
    return {"text": text}


PROMPT_NODE = NodeType(
    variant=NodeVariant.PROMPT,
    name="Prompt",
    description="Text prompt input for generation",
    category=NodeCategory.INPUT,
    outputs=[
        OutputDefinition(
            name="text",
            label="Text",
            kind=HandleKind.TEXT,
            description="The prompt text",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="prompt",
            label="Prompt Text",
            multiline=True,
            description="Enter your prompt here",
        ),
    ],
    executor=prompt_executor,
)


async def image_input_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """
    Execute image input node.

    Uses the uploaded image (a data URL or bare base64) when present,
    otherwise loads ``path`` from disk.
    """
    payload = parameters.get("image")
    path = parameters.get("path")
    meta = ImageMetadata()
    if parameters.get("filename"):
        meta.custom["filename"] = parameters["filename"]

    if payload:
        try:
            return {"image": ImageData.from_base64(payload, meta)}
        except (ValueError, OSError):
            raise InvalidInput("Uploaded image could not be decoded") from None

    if path:
        try:
            return {"image": ImageData.from_file(path, meta)}
        except OSError:
            raise InvalidInput(f"Image file could not be loaded: {path}") from None

    raise InvalidInput("No image loaded")


IMAGE_INPUT_NODE = NodeType(
    variant=NodeVariant.INPUT,
    name="Image Input",
    description="An uploaded image or an image file",
    category=NodeCategory.INPUT,
    outputs=[
        OutputDefinition(
            name="image",
            label="Image",
            kind=HandleKind.IMAGE,
            description="Loaded image",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="image",
            label="Image",
            description="Uploaded image as a data URL",
        ),
        ParameterDefinition.text(
            name="path",
            label="Image File",
            description="Path to an image file, used when nothing was uploaded",
        ),
    ],
    executor=image_input_executor,
)


def register_input_nodes():
    """Register all input node types."""
    register_node(PROMPT_NODE)
    register_node(IMAGE_INPUT_NODE)
