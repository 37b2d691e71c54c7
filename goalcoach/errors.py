"""
Error taxonomy for the orchestration core.
Every error here is recoverable at the component boundary that raises it;
none is allowed to escape a turn uncaught.
"""


class OrchestrationError(Exception):
    """Base exception for orchestration failures."""


class GatewayTransportError(OrchestrationError):
    """Raised when a language model call times out or fails in transport."""


class ClassificationError(OrchestrationError):
    """Raised when intent classification output is missing or malformed."""


class RoutingAmbiguity(OrchestrationError):
    """Signals that no specialist cleared the routing threshold."""


class ExtractionError(OrchestrationError):
    """Raised when entity extraction output cannot be parsed."""


class ConfirmationAmbiguous(OrchestrationError):
    """Raised when a reply is neither a clear confirmation nor a rejection."""


class ActionExecutionError(OrchestrationError):
    """Raised when both executor tiers failed to apply an action."""

    def __init__(self, action: str, message: str):
        super().__init__(f"{action} failed: {message}")
        self.action = action
        self.message = message
