"""
Utility Nodes package.

Local image operations that need no backend.
"""

from ai_media_flow.nodes.utility.annotate import ANNOTATE_NODE, annotate_executor
from ai_media_flow.nodes.utility.split import SPLIT_NODE, split_executor, split_grid


def register_utility_nodes():
    """Register utility node types."""
    from ai_media_flow.core.node_types import register_node

    register_node(ANNOTATE_NODE)
    register_node(SPLIT_NODE)


__all__ = [
    "ANNOTATE_NODE",
    "SPLIT_NODE",
    "annotate_executor",
    "split_executor",
    "split_grid",
    "register_utility_nodes",
]
