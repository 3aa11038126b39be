"""
Input Nodes package.
"""

from ai_media_flow.nodes.input.prompt import (
    IMAGE_INPUT_NODE,
    PROMPT_NODE,
    image_input_executor,
    prompt_executor,
    register_input_nodes,
)

__all__ = [
    "IMAGE_INPUT_NODE",
    "PROMPT_NODE",
    "image_input_executor",
    "prompt_executor",
    "register_input_nodes",
]
