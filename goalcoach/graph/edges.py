"""
Graph edge conditions for routing between nodes.
"""

from goalcoach.models.domain import PipelineState
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


def route_after_router(state: PipelineState) -> str:
    """
    Sends the turn to the chosen specialist or to the general handler.
    Fails gracefully to the general handler if state is invalid.

    Args:
        state: Current pipeline state

    Returns:
        Next node name: "specialist" or "general"
    """
    decision = state.get("decision")
    if decision is None:
        logger.error("invalid_state_in_routing", error="State must contain a decision", fallback="general")
        return "general"

    if decision.handler is None:
        return "general"
    return "specialist"
