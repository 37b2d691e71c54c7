"""
Confirmation detection for drafted goals and tasks.
Literal phrase matching first, semantic model check second.
"""

import re
from enum import Enum
from typing import Iterable, Optional
from langchain_core.messages import HumanMessage, SystemMessage

from goalcoach.errors import ConfirmationAmbiguous, GatewayTransportError
from goalcoach.models.domain import Role, Turn, latest_user_turn, previous_assistant_turn, to_messages
from goalcoach.models.schemas import ConfirmationCheck
from goalcoach.services.llm_service import LLMService
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

AFFIRMATIVE_WORDS = frozenset(
    {"yes", "yeah", "yep", "yup", "sure", "ok", "okay", "absolutely", "definitely", "of course"}
)
CONFIRMATION_PHRASES = AFFIRMATIVE_WORDS | frozenset(
    {
        "yes please",
        "please",
        "please do",
        "sounds good",
        "sounds great",
        "looks good",
        "looks great",
        "looks right",
        "that's right",
        "thats right",
        "that's correct",
        "correct",
        "perfect",
        "great",
        "save it",
        "add it",
        "create it",
        "do it",
        "go ahead",
        "go for it",
        "let's do it",
        "lets do it",
        "let's go with that",
        "confirm",
        "confirmed",
    }
)
CANCEL_PHRASES = frozenset(
    {
        "cancel",
        "cancel it",
        "cancel that",
        "never mind",
        "nevermind",
        "forget it",
        "forget about it",
        "don't save",
        "dont save",
        "don't save it",
        "dont save it",
        "don't save that",
        "don't add it",
        "dont add it",
        "stop",
        "no thanks",
        "no thank you",
        "not now",
    }
)
NEGATIVE_PHRASES = frozenset({"no", "nope", "nah", "not quite", "not really", "wrong", "that's wrong"})
QUESTION_CUES = (
    "would you like",
    "do you want",
    "want me to",
    "should i",
    "shall i",
    "does this look right",
    "does that look right",
    "is that right",
    "sound good",
)


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    AMBIGUOUS = "ambiguous"


def normalize_reply(text: str) -> str:
    text = text.lower().replace("’", "'")
    return re.sub(r"\s+", " ", text).strip(" .!?,")


def _clauses(text: str) -> list[str]:
    parts = re.split(r"[,.!?;]+|\s+and\s+|\s+-\s+", normalize_reply(text))
    return [part.strip() for part in parts if part.strip()]


def matches_phrases(text: str, phrases: Iterable[str]) -> bool:
    """True when every clause of the reply is one of the phrases."""
    clauses = _clauses(text)
    phrases = set(phrases)
    return bool(clauses) and all(clause in phrases for clause in clauses)


def is_bare_affirmative(text: str) -> bool:
    return normalize_reply(text) in AFFIRMATIVE_WORDS


def contains_term(text: str, terms: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(
        re.search(r"(?<!\w)" + re.escape(term.lower()) + r"(?!\w)", lowered)
        for term in terms
        if term
    )


def has_question_cue(text: str) -> bool:
    lowered = text.lower()
    return any(cue in lowered for cue in QUESTION_CUES)


def is_confirmation_context(
    assistant_text: Optional[str], domain_terms: Iterable[str], titles: Iterable[Optional[str]] = ()
) -> bool:
    """
    Whether an assistant turn asked the user to confirm something in this domain.
    Requires both a question cue and a domain cue (domain word or draft title).
    """
    if not assistant_text:
        return False
    terms = [*domain_terms, *(title for title in titles if title)]
    return has_question_cue(assistant_text) and contains_term(assistant_text, terms)


class ConfirmationDetector:
    """
    Decides whether the latest user reply confirms a drafted entity.
    """

    def __init__(self, llm_service: Optional[LLMService] = None, threshold: float = 0.6):
        """
        Initialize confirmation detector.

        Args:
            llm_service: LLM service for the semantic check (None disables it)
            threshold: Semantic confidence that must be exceeded to confirm
        """
        self.llm_service = llm_service
        self.threshold = threshold

    def literal(
        self,
        turns: list[Turn],
        domain_terms: Iterable[str],
        titles: Iterable[Optional[str]] = (),
    ) -> Optional[ConfirmationOutcome]:
        """
        Closed-set phrase check. Pure: no model call.

        A bare affirmative ("yes", "ok") only counts when the preceding
        assistant turn asked a question about this domain.

        Returns:
            The outcome, or None when the phrases do not decide it
        """
        user_turn = latest_user_turn(turns)
        if user_turn is None:
            return None
        text = user_turn.content

        if matches_phrases(text, CANCEL_PHRASES):
            return ConfirmationOutcome.CANCELLED

        if is_bare_affirmative(text):
            previous = previous_assistant_turn(turns)
            if is_confirmation_context(previous.content if previous else None, domain_terms, titles):
                return ConfirmationOutcome.CONFIRMED
            return None

        if matches_phrases(text, CONFIRMATION_PHRASES):
            return ConfirmationOutcome.CONFIRMED

        if normalize_reply(text) in NEGATIVE_PHRASES:
            return ConfirmationOutcome.REJECTED

        return None

    async def semantic(self, turns: list[Turn], entity_type: str) -> ConfirmationOutcome:
        """
        Asks the model whether the reply is an indirect confirmation.

        Returns:
            CONFIRMED above the threshold, AMBIGUOUS otherwise or on failure
        """
        if self.llm_service is None:
            return ConfirmationOutcome.AMBIGUOUS

        recent = [turn for turn in turns if turn.role != Role.SYSTEM][-4:]
        messages = [
            SystemMessage(content=PROMPTS["confirmation"]["system_prompt"].format(entity=entity_type)),
            *to_messages(recent),
            HumanMessage(content=PROMPTS["confirmation"]["request"].format(entity=entity_type)),
        ]

        try:
            check = await self.llm_service.invoke_with_structured_output(messages, ConfirmationCheck)
            logger.info(
                "semantic_confirmation_checked",
                is_confirming=check.is_confirming,
                confidence=check.confidence,
            )
            if not (check.is_confirming and check.confidence > self.threshold):
                raise ConfirmationAmbiguous(
                    f"Reply not confirmed (confidence {check.confidence:.2f})"
                )
            return ConfirmationOutcome.CONFIRMED

        except ConfirmationAmbiguous as e:
            logger.info("confirmation_ambiguous", reason=str(e))
            return ConfirmationOutcome.AMBIGUOUS
        except GatewayTransportError as e:
            logger.warning("semantic_confirmation_failed", error=str(e))
            return ConfirmationOutcome.AMBIGUOUS
