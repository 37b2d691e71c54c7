"""
Technical specialist: programming and technology questions.
"""

from typing import Optional

from goalcoach.models.domain import Domain, SpecialistReply, Turn, latest_user_turn
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.confirmation_service import contains_term
from goalcoach.specialists.base import Specialist
from goalcoach.utils.prompts import load_prompts

PROMPTS = load_prompts()

FITNESS_TRACKING_TERMS = ("fitness", "workout", "tracking", "tracker", "health data", "steps", "heart rate")
CODE_TERMS = ("code", "coding", "program", "programming", "function", "bug", "debug", "error")


class TechnicalSpecialist(Specialist):
    """Explains technical concepts with examples."""

    name = "technical"
    domain = Domain.PROGRAMMING_TECHNICAL
    topic = "technical"
    keywords = (
        "code", "coding", "program", "programming", "python", "javascript",
        "typescript", "java", "bug", "debug", "api", "database", "sql",
        "function", "algorithm", "script", "git", "deploy", "compile",
        "stack trace", "exception", "framework", "library",
    )

    async def confidence(self, turns: list[Turn], analysis: IntentAnalysis) -> float:
        user_turn = latest_user_turn(turns)
        if user_turn is None:
            return 0.0

        hits = sum(1 for keyword in self.keywords if contains_term(user_turn.content, [keyword]))
        score = 0.75 if hits >= 2 else 0.5 if hits == 1 else 0.1
        if analysis.domain == self.domain:
            return max(score, analysis.confidence)
        return score

    def build_system_prompt(self, analysis: IntentAnalysis) -> str:
        parts = [PROMPTS["technical"]["system_prompt"]]
        intent = analysis.primary_intent or ""
        if intent and intent != "unknown":
            parts.append(PROMPTS["technical"]["intent_hint"].format(primary_intent=intent))
            if contains_term(intent, FITNESS_TRACKING_TERMS):
                parts.append(PROMPTS["technical"]["fitness_tracking_hint"])
            elif contains_term(intent, CODE_TERMS):
                parts.append(PROMPTS["technical"]["code_hint"])
        return "\n\n".join(parts)

    async def handle(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        content = await self._chat(self.build_system_prompt(analysis), turns, context)
        return self._reply(content)
