"""
Unit tests for LLMService and the embeddings cache.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock
from langchain_core.messages import AIMessage, HumanMessage

from goalcoach.models.domain import Domain
from goalcoach.models.embeddings import CachedEmbeddingsWrapper
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.llm_service import LLMError, LLMService, LLMTimeoutError


@pytest.fixture
def chat_model():
    model = Mock()
    model.model_name = "gpt-test"
    model.ainvoke = AsyncMock(return_value=AIMessage(content="Hello!"))
    model.bind_tools.return_value.ainvoke = AsyncMock()
    return model


class TestInvokeWithRetry:
    @pytest.mark.asyncio
    async def test_returns_model_response(self, chat_model):
        service = LLMService(chat_model)

        response = await service.invoke_with_retry([HumanMessage(content="hi")])

        assert response.content == "Hello!"
        assert service.model_name == "gpt-test"

    @pytest.mark.asyncio
    async def test_retries_once_then_succeeds(self, chat_model):
        """Should retry a failed call at most once."""
        chat_model.ainvoke.side_effect = [RuntimeError("502"), AIMessage(content="Recovered")]
        service = LLMService(chat_model, max_retries=2)

        response = await service.invoke_with_retry("hi")

        assert response.content == "Recovered"
        assert chat_model.ainvoke.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_raises_llm_error(self, chat_model):
        chat_model.ainvoke.side_effect = RuntimeError("invalid api key")
        service = LLMService(chat_model, max_retries=1)

        with pytest.raises(LLMError):
            await service.invoke_with_retry("hi")

    @pytest.mark.asyncio
    async def test_timeout_raises_timeout_error(self, chat_model):
        async def slow(messages):
            await asyncio.sleep(5)

        chat_model.ainvoke.side_effect = slow
        service = LLMService(chat_model, max_retries=1, timeout=0.01)

        with pytest.raises(LLMTimeoutError):
            await service.invoke_with_retry("hi")


class TestStructuredOutput:
    @pytest.mark.asyncio
    async def test_tool_call_is_validated_into_schema(self, chat_model):
        # Arrange
        chat_model.bind_tools.return_value.ainvoke.return_value = AIMessage(
            content="",
            tool_calls=[
                {
                    "name": "IntentAnalysis",
                    "args": {"primary_intent": "set a goal", "domain": "goal_setting", "confidence": 0.9},
                    "id": "call-1",
                }
            ],
        )
        service = LLMService(chat_model)

        # Act
        analysis = await service.invoke_with_structured_output("I want to run a 5k", IntentAnalysis)

        # Assert
        assert analysis.domain == Domain.GOAL_SETTING
        chat_model.bind_tools.assert_called_with([IntentAnalysis], tool_choice="IntentAnalysis")

    @pytest.mark.asyncio
    async def test_missing_tool_call_raises(self, chat_model):
        chat_model.bind_tools.return_value.ainvoke.return_value = AIMessage(content="plain text")
        service = LLMService(chat_model, max_retries=1)

        with pytest.raises(LLMError):
            await service.invoke_with_structured_output("hi", IntentAnalysis)

    @pytest.mark.asyncio
    async def test_invalid_arguments_raise(self, chat_model):
        chat_model.bind_tools.return_value.ainvoke.return_value = AIMessage(
            content="",
            tool_calls=[{"name": "IntentAnalysis", "args": {"domain": "cooking"}, "id": "call-1"}],
        )
        service = LLMService(chat_model, max_retries=1)

        with pytest.raises(LLMError):
            await service.invoke_with_structured_output("hi", IntentAnalysis)


class TestCachedEmbeddings:
    def test_query_embeddings_are_cached(self):
        base = Mock()
        base.embed_query.return_value = [0.1, 0.2]
        embeddings = CachedEmbeddingsWrapper(base, cache_size=10)

        first = embeddings.embed_query("morning workouts")
        second = embeddings.embed_query("morning workouts")

        assert first == second == [0.1, 0.2]
        base.embed_query.assert_called_once_with("morning workouts")

    def test_documents_are_not_cached(self):
        base = Mock()
        base.embed_documents.return_value = [[0.3]]
        embeddings = CachedEmbeddingsWrapper(base)

        embeddings.embed_documents(["a"])
        embeddings.embed_documents(["a"])

        assert base.embed_documents.call_count == 2
