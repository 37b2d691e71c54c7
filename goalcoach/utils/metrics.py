"""
Per-turn performance metrics.
Tracks pipeline step latency and model token usage for one inbound turn.
"""

import time
from typing import Any
from contextvars import ContextVar

from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)

# Context variable for metrics storage (task-local)
metrics_ctx: ContextVar[dict[str, Any] | None] = ContextVar("metrics", default=None)


class TurnMetrics:
    """
    Tracks performance metrics for a single conversation turn.
    Installs itself in the current context so services can report usage.
    """

    def __init__(self):
        self.metrics = {
            "step_timings": {},
            "tokens": {"input": 0, "output": 0, "total": 0},
            "llm_calls": 0,
            "total_time": 0.0,
            "start_time": time.time(),
        }
        metrics_ctx.set(self.metrics)

    def finalize(self, **fields: Any) -> dict[str, Any]:
        """
        Finalize metrics, log them and detach from the context.

        Args:
            **fields: Extra fields to log with the summary (handler, state...)

        Returns:
            Dictionary with all collected metrics
        """
        self.metrics["total_time"] = time.time() - self.metrics["start_time"]

        step_summary = {}
        for step_name, timings in self.metrics["step_timings"].items():
            step_summary[step_name] = sum(
                t["end"] - t["start"] for t in timings if t["end"] is not None
            )
        self.metrics["step_summary"] = step_summary

        logger.info(
            "turn_metrics",
            total_time=self.metrics["total_time"],
            total_tokens=self.metrics["tokens"]["total"],
            llm_calls=self.metrics["llm_calls"],
            step_summary=step_summary,
            **fields,
        )

        metrics_ctx.set(None)
        return self.metrics


def get_metrics() -> dict[str, Any] | None:
    """Get current turn metrics from context."""
    return metrics_ctx.get()


def start_step_timing(step_name: str) -> None:
    """
    Start timing a pipeline step. No-op outside a tracked turn.

    Args:
        step_name: Name of the step
    """
    metrics = metrics_ctx.get()
    if metrics is None:
        return
    metrics["step_timings"].setdefault(step_name, []).append(
        {"start": time.time(), "end": None}
    )


def end_step_timing(step_name: str) -> float | None:
    """
    End timing a pipeline step.

    Args:
        step_name: Name of the step

    Returns:
        Elapsed time or None if the step was not started
    """
    metrics = metrics_ctx.get()
    if not metrics or step_name not in metrics["step_timings"]:
        return None

    timings = metrics["step_timings"][step_name]
    if not timings or timings[-1]["end"] is not None:
        return None

    timings[-1]["end"] = time.time()
    elapsed = timings[-1]["end"] - timings[-1]["start"]
    logger.debug("step_completed", step=step_name, elapsed=elapsed)
    return elapsed


def record_llm_usage(input_tokens: int, output_tokens: int) -> None:
    """
    Add one model call's token usage to the current turn.

    Args:
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
    """
    metrics = metrics_ctx.get()
    if metrics is None:
        return
    metrics["llm_calls"] += 1
    metrics["tokens"]["input"] += input_tokens
    metrics["tokens"]["output"] += output_tokens
    metrics["tokens"]["total"] += input_tokens + output_tokens
