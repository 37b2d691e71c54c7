"""
Intent classification for the latest user turn.
Never fails: errors degrade to a general-chat analysis.
"""

from langchain_core.messages import HumanMessage, SystemMessage

from goalcoach.errors import ClassificationError, GatewayTransportError
from goalcoach.models.domain import Role, Turn, latest_user_turn, to_messages
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.llm_service import LLMService
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()


class IntentClassifier:
    """Labels the latest user turn with domain, sentiment and confidence."""

    def __init__(self, llm_service: LLMService, context_turns: int = 4):
        """
        Initialize intent classifier.

        Args:
            llm_service: LLM service used for structured classification
            context_turns: Earlier turns included as context
        """
        self.llm_service = llm_service
        self.context_turns = context_turns

    def _build_messages(self, turns: list[Turn], user_turn: Turn, context: Turn | None):
        index = max(i for i, turn in enumerate(turns) if turn is user_turn)
        preceding = [turn for turn in turns[:index] if turn.role != Role.SYSTEM]
        preceding = preceding[-self.context_turns:] if self.context_turns else []

        messages = [SystemMessage(content=PROMPTS["intent_classification"]["system_prompt"])]
        if context is not None:
            messages.append(context.to_message())
        messages.extend(to_messages(preceding))
        messages.append(HumanMessage(content=user_turn.content))
        return messages

    async def _invoke(self, messages: list) -> IntentAnalysis:
        """
        Raises:
            ClassificationError: If the gateway fails or the output is invalid
        """
        try:
            return await self.llm_service.invoke_with_structured_output(messages, IntentAnalysis)
        except GatewayTransportError as e:
            raise ClassificationError(f"Intent classification failed: {e}") from e

    async def classify(self, turns: list[Turn], context: Turn | None = None) -> IntentAnalysis:
        """
        Classifies the latest user turn; trailing assistant turns are ignored.

        Args:
            turns: Conversation transcript
            context: Optional memory context message

        Returns:
            IntentAnalysis, general_chat with confidence 0 on failure
        """
        user_turn = latest_user_turn(turns)
        if user_turn is None:
            logger.warning("intent_classification_skipped", reason="no_user_turn")
            return IntentAnalysis()

        logger.info("intent_classification_started")
        try:
            analysis = await self._invoke(self._build_messages(turns, user_turn, context))
        except ClassificationError as e:
            logger.warning("intent_classification_failed", error=str(e), default_domain="general_chat")
            return IntentAnalysis()

        logger.info(
            "intent_classification_completed",
            domain=analysis.domain.value,
            sentiment=analysis.sentiment.value,
            confidence=analysis.confidence,
        )
        return analysis
