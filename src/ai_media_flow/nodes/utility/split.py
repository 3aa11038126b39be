"""
Split Grid Node - Cuts an image into a grid of equally sized cells.

Useful for contact sheets produced by a single generation, where each cell
is then processed on its own.
"""

from __future__ import annotations

from typing import Any

from ai_media_flow.core.data_types import HandleKind, ImageData
from ai_media_flow.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
    NodeVariant,
    OutputDefinition,
    ParameterDefinition,
)
from ai_media_flow.providers.base import InvalidInput

MAX_GRID = 8


def split_grid(image: ImageData, rows: int, cols: int) -> list[ImageData]:
    """
    Split an image into ``rows * cols`` cells, in row-major order.

    Remainder pixels on the right and bottom edges go to the last
    column and row.
    """
    cell_w = image.width // cols
    cell_h = image.height // rows
    if cell_w == 0 or cell_h == 0:
        raise InvalidInput(
            f"Image of {image.width}x{image.height} is too small for a {rows}x{cols} grid"
        )

    cells = []
    for row in range(rows):
        top = row * cell_h
        bottom = image.height if row == rows - 1 else top + cell_h
        for col in range(cols):
            left = col * cell_w
            right = image.width if col == cols - 1 else left + cell_w
            cell = image.crop(left, top, right, bottom)
            cell.metadata.custom["grid_cell"] = (row, col)
            cells.append(cell)
    return cells


async def split_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    image = inputs.get("image")
    if image is None:
        raise InvalidInput("No image to split")

    try:
        rows = int(parameters.get("gridRows", 2))
        cols = int(parameters.get("gridCols", 2))
    except (TypeError, ValueError):
        raise InvalidInput("Grid size must be a number") from None
    if not (1 <= rows <= MAX_GRID and 1 <= cols <= MAX_GRID):
        raise InvalidInput(f"Grid size must be between 1 and {MAX_GRID}")

    return {"image": split_grid(image, rows, cols)}


SPLIT_NODE = NodeType(
    variant=NodeVariant.SPLIT,
    name="Split Grid",
    description="Split an image into a grid of cells",
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
            label="Cells",
            kind=HandleKind.IMAGE,
            sequence=True,
            description="Grid cells in row-major order",
        ),
    ],
    parameters=[
        ParameterDefinition.integer(
            name="gridRows", label="Rows", default=2, min_value=1, max_value=MAX_GRID,
        ),
        ParameterDefinition.integer(
            name="gridCols", label="Columns", default=2, min_value=1, max_value=MAX_GRID,
        ),
    ],
    executor=split_executor,
)
