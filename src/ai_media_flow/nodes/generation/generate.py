"""
Generation Nodes - Nodes that generate images, video and text through a
backend.

The executor builds a GenerationRequest from the node's inputs and data
and hands it to the dispatch context, which resolves the credential and
the adapter for the selected model.
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
    OutputDefinition,
    ParameterDefinition,
    register_node,
)
from ai_media_flow.providers.base import (
    GenerationRequest,
    GenerationResult,
    InvalidInput,
    MalformedResponse,
)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def build_request(
    kind: HandleKind,
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> GenerationRequest:
    """Turn node inputs and data into a request for the selected model."""
    prompt = inputs.get("text") or ""
    if not prompt.strip():
        raise InvalidInput("Prompt is empty")

    card = context.providers.resolve_model(kind, parameters)
    # Text only models get no images
    images = _as_list(inputs.get("image"))[: card.max_reference_images]

    # Model specific values live either at the top level or in "parameters"
    extra = dict(parameters.get("parameters") or {})
    extra.update({k: parameters[k] for k in card.params if k in parameters})

    try:
        temperature = float(parameters.get("temperature", 0.7))
        max_tokens = int(parameters.get("maxTokens", 1024))
    except (TypeError, ValueError):
        raise InvalidInput("temperature and maxTokens must be numbers") from None

    return GenerationRequest(
        model=card,
        prompt=prompt,
        images=images,
        temperature=temperature,
        max_tokens=max_tokens,
        aspect_ratio=parameters.get("aspectRatio"),
        resolution=parameters.get("resolution"),
        extra_params=extra,
    )


async def generate_image_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Generate an image from a prompt and optional reference images."""
    request = build_request(HandleKind.IMAGE, inputs, parameters, context)
    result: GenerationResult = await context.generate(request)
    if not result.images:
        raise MalformedResponse("No images generated")
    return {"image": result.images[0]}


async def generate_video_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    request = build_request(HandleKind.VIDEO, inputs, parameters, context)
    result: GenerationResult = await context.generate(request)
    if not result.videos:
        raise MalformedResponse("No video generated")
    return {"video": result.videos[0]}


async def generate_text_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    request = build_request(HandleKind.TEXT, inputs, parameters, context)
    result: GenerationResult = await context.generate(request)
    if not result.text:
        raise MalformedResponse("No text generated")
    return {"text": result.text}


_ASPECT_RATIOS = [
    ("1:1", "Square (1:1)"),
    ("16:9", "Landscape (16:9)"),
    ("9:16", "Portrait (9:16)"),
    ("4:3", "Standard (4:3)"),
    ("3:4", "Standard Portrait (3:4)"),
    ("21:9", "Ultrawide (21:9)"),
]


GENERATE_IMAGE_NODE = NodeType(
    variant=NodeVariant.GENERATE_IMAGE,
    name="Generate Image",
    description="Generate or edit an image with an AI model",
    category=NodeCategory.GENERATION,
    generates=HandleKind.IMAGE,
    inputs=[
        InputDefinition(
            name="image",
            label="Images",
            kind=HandleKind.IMAGE,
            multiplicity=Multiplicity.MULTIPLE,
            required=False,
            description="Reference images to edit or combine",
        ),
        InputDefinition(
            name="text",
            label="Prompt",
            kind=HandleKind.TEXT,
            description="Text prompt describing the image",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="image",
            label="Image",
            kind=HandleKind.IMAGE,
        ),
    ],
    parameters=[
        ParameterDefinition.model(default="nano-banana"),
        ParameterDefinition.enum(
            name="aspectRatio",
            label="Aspect Ratio",
            options=_ASPECT_RATIOS,
        ),
        ParameterDefinition.enum(
            name="resolution",
            label="Resolution",
            options=[("1K", "1K"), ("2K", "2K"), ("4K", "4K")],
        ),
    ],
    executor=generate_image_executor,
)


GENERATE_VIDEO_NODE = NodeType(
    variant=NodeVariant.GENERATE_VIDEO,
    name="Generate Video",
    description="Generate a video clip from a prompt and an optional start frame",
    category=NodeCategory.GENERATION,
    generates=HandleKind.VIDEO,
    inputs=[
        InputDefinition(
            name="image",
            label="Start Frame",
            kind=HandleKind.IMAGE,
            required=False,
        ),
        InputDefinition(
            name="text",
            label="Prompt",
            kind=HandleKind.TEXT,
        ),
    ],
    outputs=[
        OutputDefinition(
            name="video",
            label="Video",
            kind=HandleKind.VIDEO,
        ),
    ],
    parameters=[
        ParameterDefinition.model(default="kling-2.1"),
        ParameterDefinition.enum(
            name="aspectRatio",
            label="Aspect Ratio",
            options=_ASPECT_RATIOS[:3],
            default="16:9",
        ),
    ],
    executor=generate_video_executor,
)


GENERATE_TEXT_NODE = NodeType(
    variant=NodeVariant.GENERATE_TEXT,
    name="LLM Generate",
    description="Generate text with a language model",
    category=NodeCategory.GENERATION,
    generates=HandleKind.TEXT,
    inputs=[
        InputDefinition(
            name="text",
            label="Prompt",
            kind=HandleKind.TEXT,
        ),
        InputDefinition(
            name="image",
            label="Images",
            kind=HandleKind.IMAGE,
            multiplicity=Multiplicity.MULTIPLE,
            required=False,
            description="Images the model should look at",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="text",
            label="Text",
            kind=HandleKind.TEXT,
        ),
    ],
    parameters=[
        ParameterDefinition.model(default="gemini-2.5-flash"),
        ParameterDefinition.float_param(
            name="temperature",
            label="Temperature",
            default=0.7,
            min_value=0.0,
            max_value=2.0,
        ),
        ParameterDefinition.integer(
            name="maxTokens",
            label="Max Tokens",
            default=1024,
            min_value=1,
            max_value=65536,
        ),
    ],
    executor=generate_text_executor,
)


def register_generation_nodes():
    """Register generation node types."""
    register_node(GENERATE_IMAGE_NODE)
    register_node(GENERATE_VIDEO_NODE)
    register_node(GENERATE_TEXT_NODE)
