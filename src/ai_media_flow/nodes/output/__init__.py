"""
Output Nodes package.
"""

from ai_media_flow.nodes.output.collect import (
    OUTPUT_NODE,
    output_executor,
    register_output_nodes,
)

__all__ = [
    "OUTPUT_NODE",
    "output_executor",
    "register_output_nodes",
]
