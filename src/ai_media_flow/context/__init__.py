"""
Context package - Payload-free projections of a graph for an assistant.

- summary: Whole-graph summary and its prompt rendering
- subgraph: Selection-scoped extraction with a summary of the rest
"""

from ai_media_flow.context.summary import (
    ConnectionSummary,
    GraphSummary,
    NodeSummary,
    format_summary_for_prompt,
    summarize,
)
from ai_media_flow.context.subgraph import (
    BoundaryConnection,
    RestSummary,
    SubgraphResult,
    extract_subgraph,
    format_subgraph_for_prompt,
)

__all__ = [
    "ConnectionSummary",
    "GraphSummary",
    "NodeSummary",
    "format_summary_for_prompt",
    "summarize",
    "BoundaryConnection",
    "RestSummary",
    "SubgraphResult",
    "extract_subgraph",
    "format_subgraph_for_prompt",
]
