"""
General conversation handler used when no specialist is confident enough.
Persona prompt adjusted for sentiment and intent, plus whatever user context
can be fetched.
"""

import asyncio
from typing import Optional
from langchain_core.messages import SystemMessage

from goalcoach.database.gateway import MemoryStore, PersistenceGateway, resolve_owner
from goalcoach.errors import GatewayTransportError
from goalcoach.models.domain import (
    Role,
    Sentiment,
    SpecialistReply,
    Turn,
    UserContext,
    latest_user_turn,
    to_messages,
)
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.llm_service import LLMService
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

CONTEXT_LIMIT = 5


def format_user_context(user_context: UserContext) -> str:
    lines = [PROMPTS["general"]["context_header"]]
    if user_context.name:
        lines.append(f"Name: {user_context.name}")
    if user_context.active_goals:
        lines.append("Active goals:")
        for goal in user_context.active_goals[:CONTEXT_LIMIT]:
            progress = goal.get("progress")
            suffix = f" ({progress}% complete)" if progress is not None else ""
            lines.append(f"- {goal.get('title')}{suffix}")
    if user_context.upcoming_tasks:
        lines.append("Upcoming tasks:")
        for task in user_context.upcoming_tasks[:CONTEXT_LIMIT]:
            due = f" (due {task.get('due_date')})" if task.get("due_date") else ""
            lines.append(f"- {task.get('title')}{due}")
    if user_context.recent_logs:
        lines.append("Recent activity:")
        for log in user_context.recent_logs[:CONTEXT_LIMIT]:
            lines.append(f"- {log.get('content') or log.get('title')}")
    if user_context.memories:
        lines.append("Things the user told you before:")
        lines.extend(f"- {memory}" for memory in user_context.memories[:CONTEXT_LIMIT])
    return "\n".join(lines)


class GeneralConversationHandler:
    """
    Conversational fallback handler with a fixed apology on failure.
    """

    name = "general"

    def __init__(
        self,
        llm_service: LLMService,
        persistence: Optional[PersistenceGateway] = None,
        memory_store: Optional[MemoryStore] = None,
        memory_top_k: int = 5,
        context_timeout: float = 5.0,
    ):
        """
        Initialize general conversation handler.

        Args:
            llm_service: LLM service for the reply
            persistence: Optional gateway for goals, tasks, logs and profile
            memory_store: Optional long-term memory for relevant snippets
            memory_top_k: Memory snippets to recall
            context_timeout: Seconds allowed for each context fetch
        """
        self.llm_service = llm_service
        self.persistence = persistence
        self.memory_store = memory_store
        self.memory_top_k = memory_top_k
        self.context_timeout = context_timeout

    async def _fetch(self, label: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.context_timeout)
        except Exception as e:
            logger.warning("user_context_fetch_failed", part=label, error=str(e))
            return None

    async def fetch_user_context(self, owner_id: Optional[str], query: str) -> UserContext:
        """
        Gathers the owner's profile, goals, tasks, logs and memories.
        Every part is optional; a failed fetch leaves it out.
        """
        if self.persistence is None:
            return UserContext()

        owner_id = await self._fetch("owner", resolve_owner(self.persistence, owner_id))
        if owner_id is None:
            return UserContext()

        profile, goals, tasks, logs = await asyncio.gather(
            self._fetch("profile", self.persistence.get_owner_profile(owner_id)),
            self._fetch("goals", self.persistence.find_goals_by_owner(owner_id, active_only=True, limit=CONTEXT_LIMIT)),
            self._fetch("tasks", self.persistence.find_tasks_by_owner(owner_id, limit=CONTEXT_LIMIT)),
            self._fetch("logs", self.persistence.find_logs_by_owner(owner_id, limit=CONTEXT_LIMIT)),
        )

        memories = None
        if self.memory_store is not None and query:
            memories = await self._fetch(
                "memories", self.memory_store.query(owner_id, query, self.memory_top_k)
            )

        return UserContext(
            name=(profile or {}).get("name"),
            active_goals=goals or [],
            upcoming_tasks=tasks or [],
            recent_logs=logs or [],
            memories=[match.text for match in memories or []],
        )

    def build_system_prompt(self, analysis: IntentAnalysis, user_context: UserContext) -> str:
        parts = [PROMPTS["persona"].strip()]

        adjustment = PROMPTS["general"]["sentiment_adjustments"].get(analysis.sentiment.value)
        if adjustment and analysis.sentiment != Sentiment.NEUTRAL:
            parts.append(adjustment)

        if analysis.primary_intent and analysis.primary_intent != "unknown":
            parts.append(
                PROMPTS["general"]["intent_guidance"].format(primary_intent=analysis.primary_intent)
            )

        parts.append(PROMPTS["general"]["help_answer"])

        if not user_context.is_empty():
            parts.append(format_user_context(user_context))

        return "\n\n".join(parts)

    async def respond(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        """
        Produces a conversational reply. Never raises.
        """
        user_turn = latest_user_turn(turns)
        user_context = await self.fetch_user_context(owner_id, user_turn.content if user_turn else "")

        messages = [SystemMessage(content=self.build_system_prompt(analysis, user_context))]
        if context is not None:
            messages.append(context.to_message())
        messages.extend(to_messages([turn for turn in turns if turn.role != Role.SYSTEM]))

        try:
            response = await self.llm_service.invoke_with_retry(messages)
        except GatewayTransportError as e:
            logger.error("general_response_failed", error=str(e))
            return SpecialistReply(
                content=PROMPTS["general"]["fallback_message"],
                handler=self.name,
                model="error-fallback",
                error=str(e),
            )

        logger.info("general_response_completed", context_parts=not user_context.is_empty())
        return SpecialistReply(
            content=response.content, handler=self.name, model=self.llm_service.model_name
        )
