"""
Goal specialist: inquiry, creation, refining, confirmation and feedback.
"""

import re
from typing import Any, Optional

from goalcoach.errors import GatewayTransportError
from goalcoach.models.domain import (
    Domain,
    GoalDraft,
    GoalState,
    SpecialistReply,
    Turn,
    latest_user_turn,
)
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.confirmation_service import ConfirmationOutcome
from goalcoach.specialists.base import FlowPhase, SlotFillingSpecialist
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)

MEASURABLE_TARGET = re.compile(
    r"(\$\s?\d[\d,]*|\d+(\.\d+)?\s*(lbs?|pounds|kg|kilos?|miles?|km|k\b|minutes|mins|hours|reps|%|percent|dollars|books|days))",
    re.IGNORECASE,
)


class GoalSpecialist(SlotFillingSpecialist):
    """
    Turns what the user wants into a saved, measurable goal.
    """

    name = "goal"
    domain = Domain.GOAL_SETTING
    topic = "goal"
    entity_type = "goal"
    draft_cls = GoalDraft
    action = "save_goal"
    domain_terms = ("goal", "goals")
    signal_phrases = (
        "set a goal",
        "new goal",
        "create a goal",
        "add a goal",
        "make a goal",
        "track a goal",
        "my goal is",
        "goal to",
        "i want to",
        "i'd like to",
        "i would like to",
        "i'd love to",
        "i plan to",
        "i'm planning to",
        "aim to",
        "work towards",
        "achieve",
    )
    keywords = signal_phrases + ("goal", "goals", "objective", "target", "resolution")
    outcome_states = {
        "inquiry": GoalState.INQUIRY,
        "asking": GoalState.REFINING,
        "presenting": GoalState.CONFIRMING,
        "saved": GoalState.FEEDBACK,
        "failed": GoalState.REFINING,
        "cancelled": GoalState.INQUIRY,
    }

    def has_signal(self, text: str) -> bool:
        return super().has_signal(text) or bool(MEASURABLE_TARGET.search(text))

    def can_handle(self, turns: list[Turn]) -> bool:
        if super().can_handle(turns):
            return True
        return self.derive_state(turns).phase != FlowPhase.IDLE

    def accepts_offer(self, turns: list[Turn], previous_text: str) -> bool:
        """The user said yes to an offer to track something as a goal."""
        if self.markers["offer"] not in previous_text:
            return False
        return self.confirmation.literal(turns, self.domain_terms) == ConfirmationOutcome.CONFIRMED

    def state_for(self, phase: FlowPhase, signal: bool) -> GoalState:
        if phase == FlowPhase.COLLECTING:
            return GoalState.REFINING
        if phase in (FlowPhase.CONFIRMING, FlowPhase.CONFIRMED):
            return GoalState.CONFIRMING
        return GoalState.CREATION if signal else GoalState.INQUIRY

    async def confidence(self, turns: list[Turn], analysis: IntentAnalysis) -> float:
        snapshot = self.derive_state(turns)
        own_domain = analysis.domain == self.domain

        if snapshot.phase != FlowPhase.IDLE:
            moved_on = (
                not own_domain
                and analysis.domain != Domain.GENERAL_CHAT
                and analysis.confidence >= 0.8
            )
            if moved_on:
                return 0.5
            return 0.9 if snapshot.state == GoalState.CONFIRMING.value else 0.85

        if snapshot.signal:
            return 0.8 if own_domain else 0.65
        if own_domain:
            return analysis.confidence
        return 0.1

    async def extract(self, turns: list[Turn], current: GoalDraft, owner_id: Optional[str]) -> GoalDraft:
        return await self.extractor.extract_goal(turns, current)

    async def handle_inquiry(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn],
    ) -> SpecialistReply:
        goals = await self._owner_goals(owner_id)
        system_prompt = f"{self.prompts['system_prompt']}\n\n{self.prompts['inquiry_instructions']}"
        if goals:
            system_prompt += "\n\nThe user's current goals:\n" + "\n".join(
                _describe_goal(goal) for goal in goals
            )

        content = await self._chat(system_prompt, turns, context)
        return self._reply(content, GoalState.INQUIRY)

    async def after_save(self, turns: list[Turn], draft: GoalDraft, context: Optional[Turn]) -> str:
        """A couple of tips for the new goal; skipped if the model fails."""
        instructions = self.prompts["feedback_instructions"].format(title=draft.title)
        user_turn = latest_user_turn(turns)
        try:
            return await self._chat(
                f"{self.prompts['system_prompt']}\n\n{instructions}",
                [user_turn] if user_turn else [],
                context,
            )
        except GatewayTransportError as e:
            logger.warning("goal_feedback_skipped", error=str(e))
            return ""


def _describe_goal(goal: dict[str, Any]) -> str:
    details = [str(goal.get("category") or "other")]
    if goal.get("deadline"):
        details.append(f"due {goal['deadline']}")
    if goal.get("progress") is not None:
        details.append(f"{goal['progress']}% complete")
    return f"- {goal.get('title')} ({', '.join(details)})"
