"""
Data Types - Values that flow along graph edges.

This module defines the data types that flow through the node graph:
- HandleKind: Enum of the three kinds a handle can carry
- ImageData: Container for image pixels and metadata
- VideoData: Reference to a generated or loaded video
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Any, TypeAlias

import numpy as np
from numpy.typing import NDArray


class HandleKind(Enum):
    """
    Kind of value carried by a handle.

    An edge may only join two handles of the same kind.
    """
    IMAGE = "image"
    TEXT = "text"
    VIDEO = "video"

    def is_compatible_with(self, other: HandleKind) -> bool:
        """Check if this kind can connect to another kind."""
        return self == other


# Type alias for node configuration values
ParameterValue: TypeAlias = str | int | float | bool | list | dict | None


@dataclass
class ImageMetadata:
    """Metadata associated with an image."""

    source_path: Path | None = None
    source_node_id: str | None = None

    # Generation parameters (if AI-generated)
    prompt: str | None = None
    model: str | None = None

    original_width: int | None = None
    original_height: int | None = None

    custom: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> ImageMetadata:
        """Create a shallow copy of this metadata."""
        return ImageMetadata(
            source_path=self.source_path,
            source_node_id=self.source_node_id,
            prompt=self.prompt,
            model=self.model,
            original_width=self.original_width,
            original_height=self.original_height,
            custom=self.custom.copy(),
        )


@dataclass
class ImageData:
    """
    Container for image data flowing through the node graph.

    Internally stores pixels as a numpy array in HWC format with
    float32 values in range [0, 1].

    Attributes:
        pixels: numpy array of shape (H, W, C) with float32 values [0, 1]
        metadata: Optional metadata about the image
    """
    pixels: NDArray[np.float32]
    metadata: ImageMetadata = field(default_factory=ImageMetadata)

    @classmethod
    def from_numpy(
        cls,
        array: NDArray,
        metadata: ImageMetadata | None = None
    ) -> ImageData:
        """
        Create ImageData from a numpy array.

        Handles various input formats:
        - uint8 [0, 255] -> float32 [0, 1]
        - float64 -> float32
        - HW (grayscale) -> HWC
        """
        arr = array.copy()

        if arr.dtype == np.uint8:
            arr = arr.astype(np.float32) / 255.0
        elif arr.dtype != np.float32:
            arr = arr.astype(np.float32)

        if arr.ndim == 2:
            arr = np.stack([arr, arr, arr], axis=-1)

        return cls(pixels=arr, metadata=metadata or ImageMetadata())

    @classmethod
    def from_pil(cls, image, metadata: ImageMetadata | None = None) -> ImageData:
        """Create ImageData from a PIL Image."""
        from PIL import Image

        if not isinstance(image, Image.Image):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGB")

        arr = np.array(image, dtype=np.float32) / 255.0

        meta = metadata or ImageMetadata()
        meta.original_width = image.width
        meta.original_height = image.height

        return cls(pixels=arr, metadata=meta)

    @classmethod
    def from_file(cls, path: str | Path, metadata: ImageMetadata | None = None) -> ImageData:
        """
        Create ImageData by loading an image from a file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        from PIL import Image

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")

        with Image.open(path) as image:
            image.load()
            meta = metadata or ImageMetadata()
            meta.source_path = path
            return cls.from_pil(image, meta)

    @classmethod
    def from_bytes(cls, data: bytes, metadata: ImageMetadata | None = None) -> ImageData:
        """Decode encoded image bytes (PNG, JPEG, WebP...)."""
        from PIL import Image

        with Image.open(BytesIO(data)) as image:
            image.load()
            return cls.from_pil(image, metadata)

    @classmethod
    def from_base64(cls, data: str, metadata: ImageMetadata | None = None) -> ImageData:
        """
        Decode a base64 string or a ``data:image/...;base64,`` URL.

        Raises:
            ValueError: If the payload is not valid base64
        """
        if data.startswith("data:"):
            data = data.split(",", 1)[1]
        try:
            raw = base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise ValueError("Invalid base64 image payload") from e
        return cls.from_bytes(raw, metadata)

    @classmethod
    def empty(cls, width: int, height: int, channels: int = 3) -> ImageData:
        """Create an empty (black) image of the given size."""
        arr = np.zeros((height, width, channels), dtype=np.float32)
        return cls(pixels=arr)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def channels(self) -> int:
        return self.pixels.shape[2] if self.pixels.ndim == 3 else 1

    @property
    def size(self) -> tuple[int, int]:
        """Image size as (width, height)."""
        return (self.width, self.height)

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    def to_numpy(self, dtype: np.dtype = np.float32) -> NDArray:
        """Convert to numpy array in HWC format."""
        if dtype == np.uint8:
            return (self.pixels * 255).clip(0, 255).astype(np.uint8)
        return self.pixels.astype(dtype)

    def to_pil(self):
        """Convert to PIL Image."""
        from PIL import Image

        arr = self.to_numpy(np.uint8)
        mode = "RGBA" if self.has_alpha else "RGB"
        return Image.fromarray(arr, mode=mode)

    def to_png_bytes(self) -> bytes:
        """Encode as PNG."""
        buf = BytesIO()
        self.to_pil().save(buf, format="PNG")
        return buf.getvalue()

    def to_base64(self) -> str:
        """Encode as base64 PNG (no data URL prefix)."""
        return base64.b64encode(self.to_png_bytes()).decode()

    def to_data_url(self) -> str:
        return f"data:image/png;base64,{self.to_base64()}"

    def crop(self, left: int, top: int, right: int, bottom: int) -> ImageData:
        """Return the pixel region [top:bottom, left:right] as a new image."""
        meta = self.metadata.copy()
        return ImageData(
            pixels=self.pixels[top:bottom, left:right].copy(),
            metadata=meta,
        )

    def copy(self) -> ImageData:
        """Create a copy of this image."""
        return ImageData(
            pixels=self.pixels.copy(),
            metadata=self.metadata.copy(),
        )


@dataclass
class VideoData:
    """
    A video produced by a generation backend.

    Backends usually return a hosted URL; ``content`` is only filled in
    when the bytes were downloaded or supplied inline.
    """
    url: str | None = None
    content: bytes | None = field(default=None, repr=False)
    mime_type: str = "video/mp4"
    duration: float | None = None
    model: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.url and not self.content
