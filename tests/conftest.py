from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `ai_media_flow`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture
def node_registry():
    """The global node registry with every built-in node type registered."""
    from ai_media_flow.core.node_types import NodeRegistry
    from ai_media_flow.nodes import register_all_nodes

    register_all_nodes()
    return NodeRegistry.instance()


@pytest.fixture
def png_data_url():
    """A small solid-colour RGB image as a data URL."""
    from PIL import Image

    from ai_media_flow.core.data_types import ImageData

    return ImageData.from_pil(Image.new("RGB", (8, 6), (200, 40, 40))).to_data_url()
