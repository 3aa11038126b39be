"""
Generation Nodes package.

Nodes that call a generation backend for images, video or text.
"""

from ai_media_flow.nodes.generation.generate import (
    GENERATE_IMAGE_NODE,
    GENERATE_TEXT_NODE,
    GENERATE_VIDEO_NODE,
    build_request,
    generate_image_executor,
    generate_text_executor,
    generate_video_executor,
    register_generation_nodes,
)

__all__ = [
    "GENERATE_IMAGE_NODE",
    "GENERATE_VIDEO_NODE",
    "GENERATE_TEXT_NODE",
    "build_request",
    "generate_image_executor",
    "generate_video_executor",
    "generate_text_executor",
    "register_generation_nodes",
]
