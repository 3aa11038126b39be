"""
Nodes package - All node implementations.

This package contains node implementations organized by category:
- input: Image input, Prompt
- generation: Generate Image, Generate Video, LLM Generate
- utility: Annotation, Split Grid
- output: Output
"""

from ai_media_flow.nodes.generation import register_generation_nodes
from ai_media_flow.nodes.input import register_input_nodes
from ai_media_flow.nodes.output import register_output_nodes
from ai_media_flow.nodes.utility import register_utility_nodes


def register_all_nodes() -> None:
    """Register all built-in nodes."""
    register_input_nodes()
    register_generation_nodes()
    register_utility_nodes()
    register_output_nodes()


__all__ = [
    "register_all_nodes",
]
