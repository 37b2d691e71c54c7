"""
Graph package for the LangGraph turn pipeline.
"""

from goalcoach.graph.builder import build_graph, build_orchestrator
from goalcoach.graph.nodes import GraphNodes
from goalcoach.graph.edges import route_after_router

__all__ = [
    "build_graph",
    "build_orchestrator",
    "GraphNodes",
    "route_after_router",
]
