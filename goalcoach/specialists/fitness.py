"""
Fitness specialist: training, nutrition and recovery advice.
Offers to track measurable targets as goals.
"""

import re
from typing import Any, Optional

from goalcoach.models.domain import Domain, Role, SpecialistReply, Turn, latest_user_turn
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.specialists.base import Specialist
from goalcoach.specialists.goal import MEASURABLE_TARGET
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

CONTEXT_TOPICS = {
    "strength": ("bench press", "deadlift", "squat"),
    "cardio": ("run", "running", "cardio", "endurance"),
    "nutrition": ("diet", "nutrition", "protein"),
}


class FitnessSpecialist(Specialist):
    """
    Answers fitness questions with topic notes for strength, cardio and nutrition.
    """

    name = "fitness"
    domain = Domain.FITNESS_HEALTH
    topic = "fitness"
    keywords = (
        "workout", "exercise", "gym", "fitness", "run", "running",
        "weight", "strength", "cardio", "muscle", "train", "training",
        "bench press", "squat", "deadlift", "push-up", "pull-up",
        "diet", "nutrition", "protein", "calories", "macro",
        "stretch", "mobility", "injury", "recovery",
    )

    @staticmethod
    def _keyword_score(content: str) -> float:
        text = content.lower()
        if (
            ("workout" in text and "plan" in text)
            or ("bench press" in text and re.search(r"\d+", text))
            or ("run" in text and "mile" in text)
            or ("gym" in text and "routine" in text)
        ):
            return 0.9
        if any(word in text for word in ("workout", "exercise", "gym", "strength training")):
            return 0.7
        if any(word in text for word in ("protein", "weight", "stronger", "health")):
            return 0.4
        return 0.1

    async def confidence(self, turns: list[Turn], analysis: IntentAnalysis) -> float:
        user_turn = latest_user_turn(turns)
        if user_turn is None:
            return 0.0

        score = self._keyword_score(user_turn.content)
        if analysis.domain == self.domain:
            return max(score, analysis.confidence)
        if analysis.domain == Domain.GOAL_SETTING:
            # setting the goal belongs to the goal specialist
            return min(score, 0.5)
        return score

    def fitness_context(self, turns: list[Turn]) -> str:
        user_text = " ".join(turn.content.lower() for turn in turns if turn.role == Role.USER)
        notes = [
            PROMPTS["fitness_context"][topic]
            for topic, words in CONTEXT_TOPICS.items()
            if any(word in user_text for word in words)
        ]
        return "\n".join(notes)

    async def handle(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        goals = [
            goal for goal in await self._owner_goals(owner_id) if goal.get("category") == "health"
        ]

        parts = [PROMPTS["fitness"]["system_prompt"]]
        topic_notes = self.fitness_context(turns)
        if topic_notes:
            parts.append(topic_notes)
        if goals:
            parts.append(
                PROMPTS["fitness"]["goals_header"]
                + "\n"
                + "\n".join(f"- {goal.get('title')}" for goal in goals)
            )

        content = await self._chat("\n\n".join(parts), turns, context)

        user_turn = latest_user_turn(turns)
        if user_turn and self._should_offer_goal(user_turn.content, goals):
            content = f"{content}\n\n{PROMPTS['goal']['markers']['offer']}"
            logger.info("fitness_goal_offered")

        return self._reply(content)

    @staticmethod
    def _should_offer_goal(text: str, goals: list[dict[str, Any]]) -> bool:
        """A measurable target the user is not already tracking."""
        if not MEASURABLE_TARGET.search(text):
            return False
        lowered = text.lower()
        return not any(
            str(goal.get("title", "")).lower() in lowered for goal in goals if goal.get("title")
        )
