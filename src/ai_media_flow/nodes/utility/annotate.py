"""
Annotate Node - Draws shapes and labels on top of an image.

Annotations are stored in ``node.data["annotations"]`` as a list of shape
dicts in image pixel coordinates:

    {"type": "rectangle", "x": 10, "y": 10, "width": 80, "height": 40,
     "stroke": "#ff0000", "strokeWidth": 3, "fill": None}

Supported types are rectangle, ellipse (alias circle), line, arrow,
freehand (``points`` as a flat [x1, y1, x2, y2, ...] list) and text.
When the editor already rendered the annotated image it is passed as
``outputImage`` and used as-is.
"""

from __future__ import annotations

import math
from typing import Any

from PIL import ImageColor, ImageDraw, ImageFont

from ai_media_flow.core.data_types import HandleKind, ImageData
from ai_media_flow.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
    NodeVariant,
    OutputDefinition,
    ParameterDefinition,
    ParameterType,
)
from ai_media_flow.providers.base import InvalidInput

DEFAULT_STROKE = "#ff0000"


def _points(shape: dict[str, Any]) -> list[tuple[float, float]]:
    flat = shape.get("points") or []
    if len(flat) % 2:
        raise InvalidInput("Annotation points must come in x, y pairs")
    return [(float(flat[i]), float(flat[i + 1])) for i in range(0, len(flat), 2)]


def _box(shape: dict[str, Any]) -> tuple[float, float, float, float]:
    x = float(shape.get("x", 0))
    y = float(shape.get("y", 0))
    return (x, y, x + float(shape.get("width", 0)), y + float(shape.get("height", 0)))


def _arrow_head(
    start: tuple[float, float], end: tuple[float, float], size: float
) -> list[tuple[float, float]]:
    angle = math.atan2(end[1] - start[1], end[0] - start[0])
    spread = math.radians(25)
    return [
        end,
        (end[0] - size * math.cos(angle - spread), end[1] - size * math.sin(angle - spread)),
        (end[0] - size * math.cos(angle + spread), end[1] - size * math.sin(angle + spread)),
    ]


def draw_annotations(image: ImageData, shapes: list[dict[str, Any]]) -> ImageData:
    """Render shapes onto a copy of ``image``."""
    canvas = image.to_pil().convert("RGBA")
    draw = ImageDraw.Draw(canvas)

    for shape in shapes:
        kind = shape.get("type")
        try:
            stroke = ImageColor.getrgb(shape.get("stroke") or DEFAULT_STROKE)
            fill = ImageColor.getrgb(shape["fill"]) if shape.get("fill") else None
            width = max(1, int(shape.get("strokeWidth", 3)))

            if kind == "rectangle":
                draw.rectangle(_box(shape), outline=stroke, fill=fill, width=width)
            elif kind in ("ellipse", "circle"):
                draw.ellipse(_box(shape), outline=stroke, fill=fill, width=width)
            elif kind in ("line", "freehand"):
                draw.line(_points(shape), fill=stroke, width=width, joint="curve")
            elif kind == "arrow":
                points = _points(shape)
                if len(points) < 2:
                    raise InvalidInput("An arrow needs two points")
                draw.line(points, fill=stroke, width=width)
                draw.polygon(_arrow_head(points[-2], points[-1], width * 4), fill=stroke)
            elif kind == "text":
                font = ImageFont.load_default(size=int(shape.get("fontSize", 24)))
                draw.text(
                    (float(shape.get("x", 0)), float(shape.get("y", 0))),
                    str(shape.get("text", "")),
                    fill=fill or stroke,
                    font=font,
                )
            else:
                raise InvalidInput(f"Unknown annotation type: {kind}")
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Invalid {kind} annotation: {e}") from None

    if not image.has_alpha:
        canvas = canvas.convert("RGB")
    result = ImageData.from_pil(canvas, image.metadata.copy())
    result.metadata.custom["annotations"] = len(shapes)
    return result


async def annotate_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    image = inputs.get("image")
    if image is None:
        raise InvalidInput("No image to annotate")

    rendered = parameters.get("outputImage")
    if rendered:
        try:
            return {"image": ImageData.from_base64(rendered)}
        except (ValueError, OSError):
            raise InvalidInput("Annotated image could not be decoded") from None

    shapes = parameters.get("annotations") or []
    if not isinstance(shapes, list):
        raise InvalidInput("annotations must be a list")
    return {"image": draw_annotations(image, shapes)}


ANNOTATE_NODE = NodeType(
    variant=NodeVariant.ANNOTATE,
    name="Annotation",
    description="Draw shapes and labels on an image",
    category=NodeCategory.UTILITY,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            kind=HandleKind.IMAGE,
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
        ParameterDefinition(
            name="annotations",
            label="Annotations",
            param_type=ParameterType.LIST,
            default=[],
        ),
    ],
    executor=annotate_executor,
)
