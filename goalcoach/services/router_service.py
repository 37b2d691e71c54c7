"""
Specialist routing: classify the turn, prefilter specialists, score them
and pick the most confident one above the threshold.
"""

import asyncio
from typing import Any, Iterator, Optional
from pydantic import BaseModel, ConfigDict, Field

from goalcoach.errors import RoutingAmbiguity
from goalcoach.models.domain import Turn
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.intent_service import IntentClassifier
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


class SpecialistCandidate(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    specialist: Any
    confidence_score: float = Field(ge=0.0, le=1.0)


class RoutingDecision(BaseModel):
    """Outcome of routing one turn; handler None means the general handler."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    analysis: IntentAnalysis
    handler: Optional[Any] = None
    confidence: float = 0.0
    candidates: list[SpecialistCandidate] = Field(default_factory=list)

    @property
    def handler_name(self) -> str:
        return self.handler.name if self.handler is not None else "general"


class SpecialistRegistry:
    """Ordered specialist registry. Registration order breaks score ties."""

    def __init__(self, specialists: Optional[list[Any]] = None):
        self._specialists: list[Any] = []
        for specialist in specialists or []:
            self.register(specialist)

    def register(self, specialist: Any) -> None:
        if any(existing.name == specialist.name for existing in self._specialists):
            raise ValueError(f"Specialist already registered: {specialist.name}")
        self._specialists.append(specialist)
        logger.info("specialist_registered", specialist=specialist.name, domain=specialist.domain.value)

    def get(self, name: str) -> Optional[Any]:
        return next((s for s in self._specialists if s.name == name), None)

    @property
    def names(self) -> list[str]:
        return [specialist.name for specialist in self._specialists]

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._specialists))

    def __len__(self) -> int:
        return len(self._specialists)


class SpecialistRouter:
    """
    Routes each turn to at most one specialist.
    """

    def __init__(
        self,
        registry: SpecialistRegistry,
        classifier: IntentClassifier,
        threshold: float = 0.6,
    ):
        """
        Initialize specialist router.

        Args:
            registry: Registered specialists, in tie-break order
            classifier: Intent classifier for the latest user turn
            threshold: Minimum confidence (inclusive) to route to a specialist
        """
        self.registry = registry
        self.classifier = classifier
        self.threshold = threshold

    async def _score(self, specialist: Any, turns: list[Turn], analysis: IntentAnalysis) -> float:
        try:
            score = float(await specialist.confidence(turns, analysis))
        except Exception as e:
            logger.warning("specialist_scoring_failed", specialist=specialist.name, error=str(e))
            return 0.0
        return min(max(score, 0.0), 1.0)

    def select(self, candidates: list[SpecialistCandidate]) -> SpecialistCandidate:
        """
        Highest score wins; the earlier-registered candidate wins ties.

        Raises:
            RoutingAmbiguity: If no candidate reaches the threshold
        """
        best: Optional[SpecialistCandidate] = None
        for candidate in candidates:
            if best is None or candidate.confidence_score > best.confidence_score:
                best = candidate
        if best is None or best.confidence_score < self.threshold:
            raise RoutingAmbiguity(
                f"No specialist reached {self.threshold} "
                f"(best {best.confidence_score if best else 0.0:.2f})"
            )
        return best

    async def route(self, turns: list[Turn], context: Optional[Turn] = None) -> RoutingDecision:
        """
        Classifies and routes the latest user turn.

        Args:
            turns: Conversation transcript
            context: Optional memory context message

        Returns:
            RoutingDecision; handler is None when the general handler should answer
        """
        analysis = await self.classifier.classify(turns, context)

        survivors = [
            specialist
            for specialist in self.registry
            if specialist.domain == analysis.domain or specialist.can_handle(turns)
        ]
        scores = await asyncio.gather(*(self._score(s, turns, analysis) for s in survivors))
        candidates = [
            SpecialistCandidate(specialist=specialist, confidence_score=score)
            for specialist, score in zip(survivors, scores)
        ]

        logger.info(
            "specialists_scored",
            domain=analysis.domain.value,
            scores={c.specialist.name: round(c.confidence_score, 3) for c in candidates},
        )

        try:
            best = self.select(candidates)
        except RoutingAmbiguity as e:
            logger.info("routing_fallback_general", reason=str(e))
            return RoutingDecision(analysis=analysis, candidates=candidates)

        logger.info(
            "routing_completed",
            specialist=best.specialist.name,
            confidence=best.confidence_score,
        )
        return RoutingDecision(
            analysis=analysis,
            handler=best.specialist,
            confidence=best.confidence_score,
            candidates=candidates,
        )
