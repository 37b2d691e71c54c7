"""
Specialist base classes.

Specialists keep no state between turns. Slot-filling specialists write a
fixed recap block and fixed questions into their replies, so the flow state
and the draft can be read back from the transcript on the next turn.
"""

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Optional
from pydantic import BaseModel, ConfigDict
from langchain_core.messages import SystemMessage

from goalcoach.database.gateway import PersistenceError, PersistenceGateway, resolve_owner
from goalcoach.errors import ExtractionError, GatewayTransportError
from goalcoach.models.domain import (
    Domain,
    EntityDraft,
    Role,
    SpecialistReply,
    Turn,
    latest_user_turn,
    previous_assistant_turn,
    to_messages,
)
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.action_executor import ActionExecutor
from goalcoach.services.confirmation_service import (
    ConfirmationDetector,
    ConfirmationOutcome,
    contains_term,
)
from goalcoach.services.extraction_service import EntityExtractor
from goalcoach.services.llm_service import LLMService
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

RECAP_LINE = re.compile(r"^- ([^:\n]+): (.+)$", re.MULTILINE)


class Specialist(ABC):
    """
    A domain handler the router can pick for a turn.
    """

    name: ClassVar[str]
    domain: ClassVar[Domain]
    topic: ClassVar[str]
    keywords: ClassVar[tuple[str, ...]] = ()

    def __init__(self, llm_service: LLMService, persistence: Optional[PersistenceGateway] = None):
        self.llm_service = llm_service
        self.persistence = persistence

    def can_handle(self, turns: list[Turn]) -> bool:
        """Cheap keyword check used to prefilter candidates."""
        user_turn = latest_user_turn(turns)
        return user_turn is not None and contains_term(user_turn.content, self.keywords)

    @abstractmethod
    async def confidence(self, turns: list[Turn], analysis: IntentAnalysis) -> float:
        """Score in [0, 1] for handling the latest turn."""

    @abstractmethod
    async def handle(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        """Produces the reply for the latest turn."""

    async def respond(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        """
        Runs handle() and converts any failure into a fixed reply.
        """
        try:
            return await self.handle(turns, owner_id, analysis, context)
        except Exception as e:
            logger.error("specialist_failed", exc_info=True, specialist=self.name, error=str(e))
            return SpecialistReply(
                content=PROMPTS["responses"]["specialist_error"].format(topic=self.topic),
                handler=self.name,
                model="error-fallback",
                error=str(e),
            )

    async def _chat(
        self,
        system_prompt: str,
        turns: list[Turn],
        context: Optional[Turn] = None,
        window: int = 10,
    ) -> str:
        messages = [SystemMessage(content=system_prompt)]
        if context is not None:
            messages.append(context.to_message())
        recent = [turn for turn in turns if turn.role != Role.SYSTEM][-window:]
        messages.extend(to_messages(recent))

        response = await self.llm_service.invoke_with_retry(messages)
        return str(response.content).strip()

    def _reply(self, content: str, state: Any = None, **fields: Any) -> SpecialistReply:
        return SpecialistReply(
            content=content,
            handler=self.name,
            state=state.value if isinstance(state, Enum) else state,
            model=self.llm_service.model_name,
            **fields,
        )

    async def _owner_goals(self, owner_id: Optional[str], active_only: bool = True) -> list[dict[str, Any]]:
        """The owner's goals, or an empty list when storage is unavailable."""
        if self.persistence is None:
            return []
        try:
            owner = await resolve_owner(self.persistence, owner_id)
            return await self.persistence.find_goals_by_owner(owner, active_only=active_only, limit=10)
        except PersistenceError as e:
            logger.warning("owner_goals_unavailable", specialist=self.name, error=str(e))
            return []


class FlowPhase(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"


class FlowSnapshot(BaseModel):
    """Flow state derived from the transcript for one specialist."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: FlowPhase
    state: str
    draft: EntityDraft
    signal: bool = False


class SlotFillingSpecialist(Specialist):
    """
    Collects the fields of one entity over several turns, asks for
    confirmation and hands the confirmed draft to the action executor.
    """

    entity_type: ClassVar[str]
    draft_cls: ClassVar[type[EntityDraft]]
    action: ClassVar[str]
    domain_terms: ClassVar[tuple[str, ...]]
    signal_phrases: ClassVar[tuple[str, ...]] = ()
    outcome_states: ClassVar[dict[str, Enum]]

    def __init__(
        self,
        llm_service: LLMService,
        persistence: Optional[PersistenceGateway],
        extractor: EntityExtractor,
        confirmation: ConfirmationDetector,
        executor: ActionExecutor,
        extraction_window: int = 10,
    ):
        """
        Initialize slot-filling specialist.

        Args:
            llm_service: LLM service for conversational replies
            persistence: Gateway used to read the owner's goals
            extractor: Entity extractor for drafts
            confirmation: Confirmation detector
            executor: Action executor that persists confirmed drafts
            extraction_window: Turns considered when extracting
        """
        super().__init__(llm_service, persistence)
        self.extractor = extractor
        self.confirmation = confirmation
        self.executor = executor
        self.extraction_window = extraction_window
        self.prompts = PROMPTS[self.entity_type]
        self.markers = self.prompts["markers"]
        self._label_to_field = {label: field for field, label in self.prompts["recap_labels"].items()}

    # Transcript markers

    def render_recap(self, draft: EntityDraft) -> str:
        header = (
            self.prompts["recap_header_complete"]
            if draft.is_complete()
            else self.prompts["recap_header_partial"]
        )
        lines = [header]
        for field, value in draft.filled().items():
            label = self.prompts["recap_labels"].get(field)
            if label:
                lines.append(f"- {label}: {' '.join(str(value).split())}")
        return "\n".join(lines)

    def parse_recap(self, text: str) -> EntityDraft:
        values = {}
        for label, value in RECAP_LINE.findall(text):
            field = self._label_to_field.get(label.strip())
            if field:
                values[field] = value.strip()
        return self.draft_cls(**values)

    def is_slot_prompt(self, text: str) -> bool:
        return any(question in text for question in self.markers["slot_questions"].values())

    def is_confirm_prompt(self, text: str) -> bool:
        return any(
            self.markers[key] in text
            for key in ("confirm_question", "retry_question", "change_question")
        )

    def is_closing(self, text: str) -> bool:
        return self.markers["saved"] in text or self.markers["cancelled"] in text

    def has_signal(self, text: str) -> bool:
        return contains_term(text, self.signal_phrases)

    def accepts_offer(self, turns: list[Turn], previous_text: str) -> bool:
        return False

    def flow_window(self, turns: list[Turn]) -> list[Turn]:
        """Non-system turns since this specialist last closed a flow."""
        start = 0
        for index, turn in enumerate(turns):
            if turn.role == Role.ASSISTANT and self.is_closing(turn.content):
                start = index + 1
        window = [turn for turn in turns[start:] if turn.role != Role.SYSTEM]
        return window[-self.extraction_window:]

    @abstractmethod
    def state_for(self, phase: FlowPhase, signal: bool) -> Enum:
        """Maps a flow phase onto this specialist's state enum."""

    def derive_state(self, turns: list[Turn]) -> FlowSnapshot:
        """
        Reads the flow state and draft from the transcript alone.
        Same transcript, same snapshot.
        """
        user_turn = latest_user_turn(turns)
        previous = previous_assistant_turn(turns)
        previous_text = previous.content if previous else ""
        signal = user_turn is not None and self.has_signal(user_turn.content)

        phase, draft = FlowPhase.IDLE, self.draft_cls()
        if previous_text and self.is_confirm_prompt(previous_text):
            draft = self.parse_recap(previous_text)
            literal = self.confirmation.literal(turns, self.domain_terms, [draft.title])
            phase = FlowPhase.CONFIRMED if literal == ConfirmationOutcome.CONFIRMED else FlowPhase.CONFIRMING
        elif previous_text and self.is_slot_prompt(previous_text):
            phase, draft = FlowPhase.COLLECTING, self.parse_recap(previous_text)
        elif previous_text and self.accepts_offer(turns, previous_text):
            signal = True

        return FlowSnapshot(phase=phase, state=self.state_for(phase, signal).value, draft=draft, signal=signal)

    # Turn handling

    @abstractmethod
    async def extract(self, turns: list[Turn], current: EntityDraft, owner_id: Optional[str]) -> EntityDraft:
        """Extracts the draft from the flow window, merged into ``current``."""

    @abstractmethod
    async def handle_inquiry(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn],
    ) -> SpecialistReply:
        """Answers a question about this domain when no flow is open."""

    async def handle(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn] = None,
    ) -> SpecialistReply:
        snapshot = self.derive_state(turns)
        logger.info(
            "flow_state_derived",
            specialist=self.name,
            state=snapshot.state,
            phase=snapshot.phase.value,
            filled=list(snapshot.draft.filled()),
        )

        if snapshot.phase == FlowPhase.IDLE and not snapshot.signal:
            return await self.handle_inquiry(turns, owner_id, analysis, context)
        if snapshot.phase == FlowPhase.CONFIRMED:
            return await self._commit(turns, snapshot.draft, owner_id, context)
        if snapshot.phase == FlowPhase.CONFIRMING:
            return await self._handle_confirmation(turns, snapshot.draft, owner_id, context)
        if snapshot.phase == FlowPhase.COLLECTING and self._cancel_requested(turns, snapshot.draft):
            return self._cancel()
        return await self._collect(turns, snapshot.draft, owner_id, context)

    def _cancel_requested(self, turns: list[Turn], draft: EntityDraft) -> bool:
        literal = self.confirmation.literal(turns, self.domain_terms, [draft.title])
        return literal == ConfirmationOutcome.CANCELLED

    def _cancel(self) -> SpecialistReply:
        logger.info("draft_cancelled", specialist=self.name)
        return self._reply(self.markers["cancelled"], self.outcome_states["cancelled"])

    async def _safe_extract(self, turns: list[Turn], current: EntityDraft, owner_id: Optional[str]) -> EntityDraft:
        try:
            return await self.extract(self.flow_window(turns), current, owner_id)
        except ExtractionError as e:
            logger.warning("draft_unchanged", specialist=self.name, error=str(e))
            return current

    async def _collect(
        self, turns: list[Turn], current: EntityDraft, owner_id: Optional[str], context: Optional[Turn]
    ) -> SpecialistReply:
        draft = await self._safe_extract(turns, current, owner_id)
        return await self._next_step(turns, draft, context)

    async def _next_step(self, turns: list[Turn], draft: EntityDraft, context: Optional[Turn]) -> SpecialistReply:
        missing = draft.missing_fields()
        acknowledgement = await self._acknowledge(turns, context)
        if missing:
            question = self.markers["slot_questions"][missing[0]]
            recap = self.render_recap(draft) if not draft.is_empty() else ""
            return self._reply(
                self._compose(acknowledgement, recap, question),
                self.outcome_states["asking"],
            )
        return self._present(draft, acknowledgement, self.markers["confirm_question"])

    def _present(self, draft: EntityDraft, lead: str, question: str) -> SpecialistReply:
        return self._reply(
            self._compose(lead, self.render_recap(draft), question),
            self.outcome_states["presenting"],
        )

    async def _handle_confirmation(
        self, turns: list[Turn], draft: EntityDraft, owner_id: Optional[str], context: Optional[Turn]
    ) -> SpecialistReply:
        literal = self.confirmation.literal(turns, self.domain_terms, [draft.title])
        if literal == ConfirmationOutcome.CANCELLED:
            return self._cancel()

        refined = await self._safe_extract(turns, draft, owner_id)
        if self._changed(draft, refined):
            logger.info("draft_refined_during_confirmation", specialist=self.name)
            return await self._next_step(turns, refined, context)

        if literal == ConfirmationOutcome.REJECTED:
            return self._present(refined, "", self.markers["change_question"])

        outcome = await self.confirmation.semantic(turns, self.entity_type)
        if outcome == ConfirmationOutcome.CONFIRMED:
            return await self._commit(turns, refined, owner_id, context)

        return self._present(refined, "", self.markers["confirm_question"])

    def _changed(self, before: EntityDraft, after: EntityDraft) -> bool:
        """A filled field got a new value, or a required field got filled."""
        for field in after.FIELD_ORDER:
            old, new = getattr(before, field), getattr(after, field)
            if old and new != old:
                return True
            if not old and new and field in after.REQUIRED_FIELDS:
                return True
        return False

    async def commit_fields(self, draft: EntityDraft, owner_id: Optional[str]) -> dict[str, Any]:
        return draft.model_dump(exclude_none=True, exclude={"confidence"})

    async def _commit(
        self, turns: list[Turn], draft: EntityDraft, owner_id: Optional[str], context: Optional[Turn]
    ) -> SpecialistReply:
        """Persists the confirmed draft exactly once for this turn."""
        result = await self.executor.execute(self.action, await self.commit_fields(draft, owner_id), owner_id)

        if not result.success:
            logger.warning("draft_not_saved", specialist=self.name, error=result.error)
            return self._reply(
                self._compose(
                    self.prompts["failed_template"],
                    self.render_recap(draft),
                    self.markers["retry_question"],
                ),
                self.outcome_states["failed"],
                error=result.error,
            )

        entity = (result.payload or {}).get(self.entity_type) or {}
        entity_id = str(entity.get("id", ""))
        saved = self.prompts["saved_template"].format(**{**draft.filled(), **entity, "id": entity_id})
        follow_up = await self.after_save(turns, draft, context)

        logger.info("draft_saved", specialist=self.name, entity_id=entity_id, tier=result.tier)
        return self._reply(
            self._compose(saved, follow_up),
            self.outcome_states["saved"],
            entity_created=True,
            entity_type=self.entity_type,
            entity_id=entity_id,
        )

    async def after_save(self, turns: list[Turn], draft: EntityDraft, context: Optional[Turn]) -> str:
        return ""

    async def _acknowledge(self, turns: list[Turn], context: Optional[Turn]) -> str:
        instructions = f"{self.prompts['system_prompt']}\n\n{self.prompts['acknowledge_instructions']}"
        try:
            return await self._chat(instructions, self.flow_window(turns), context, window=4)
        except GatewayTransportError as e:
            logger.warning("acknowledgement_skipped", specialist=self.name, error=str(e))
            return ""

    @staticmethod
    def _compose(*parts: str) -> str:
        return "\n\n".join(part.strip() for part in parts if part and part.strip())
