"""
LLM service providing centralized async LLM operations.
Implements timeout, rate limiting, bounded retry and usage tracking.
"""

import time
import asyncio
from typing import Type, TypeVar
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI
from langchain_google_genai import ChatGoogleGenerativeAI

from goalcoach.errors import GatewayTransportError
from goalcoach.utils.logger import get_logger
from goalcoach.utils.metrics import record_llm_usage

logger = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMError(GatewayTransportError):
    """Raised when an LLM call fails or returns unusable output."""


class LLMTimeoutError(GatewayTransportError):
    """Raised when LLM call exceeds timeout threshold."""


def create_llm(
    model_name: str, api_key: str | None, temperature: float = 0
) -> BaseChatModel:
    """
    Factory function to create chat model instances.

    Args:
        model_name: Model identifier (e.g., "gpt-4o-mini", "gemini-2.5-flash")
        api_key: API key for the provider
        temperature: Sampling temperature (0 for deterministic)

    Returns:
        Configured chat model instance

    Raises:
        ValueError: If model provider is not supported
    """
    if "gemini" in model_name:
        return ChatGoogleGenerativeAI(
            google_api_key=api_key, model=model_name, temperature=temperature
        )
    elif "gpt" in model_name or model_name.startswith("o"):
        return ChatOpenAI(
            api_key=api_key, model=model_name, temperature=temperature
        )
    else:
        raise ValueError(
            f"Unsupported model: {model_name}. "
            "Model name must contain 'gpt' or 'gemini'"
        )


class LLMService:
    """
    Centralized async service for all LLM operations.
    Every call is rate limited, bounded by a timeout and retried at most
    ``max_retries - 1`` times.
    """

    def __init__(
        self,
        model: BaseChatModel,
        max_retries: int = 2,
        timeout: int = 30,
        rate_limit: int = 3,
    ):
        """
        Initialize async LLM service.

        Args:
            model: Configured chat model instance
            max_retries: Total attempts per call
            timeout: Timeout in seconds for each LLM call
            rate_limit: Maximum concurrent LLM requests (Semaphore)
        """
        self.model = model
        self.max_retries = max_retries
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(rate_limit)

    @property
    def model_name(self) -> str:
        return getattr(self.model, "model_name", None) or getattr(
            self.model, "model", "unknown"
        )

    async def invoke_with_retry(
        self,
        messages: list[BaseMessage] | str,
        timeout: int | None = None,
    ) -> BaseMessage:
        """
        Invokes LLM with async retry, timeout, and rate limiting.

        Args:
            messages: Input messages or single prompt string
            timeout: Override default timeout (seconds)

        Returns:
            LLM response as BaseMessage

        Raises:
            LLMTimeoutError: If call exceeds timeout
            LLMError: If call fails after all retries
        """
        timeout = timeout or self.timeout
        start_time = time.time()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception_type((LLMError, LLMTimeoutError)),
            reraise=True,
        ):
            with attempt:
                try:
                    logger.info(
                        "llm_call_started",
                        attempt=attempt.retry_state.attempt_number,
                        timeout=timeout,
                        model=self.model_name,
                    )

                    async with self.semaphore:
                        response = await asyncio.wait_for(
                            self.model.ainvoke(messages), timeout=timeout
                        )

                    elapsed = time.time() - start_time
                    self._log_usage(response, elapsed)
                    return response

                except asyncio.TimeoutError as e:
                    elapsed = time.time() - start_time
                    logger.error(
                        "llm_call_timeout",
                        elapsed=elapsed,
                        timeout=timeout,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise LLMTimeoutError(
                        f"LLM call exceeded timeout of {timeout}s"
                    ) from e
                except Exception as e:
                    elapsed = time.time() - start_time
                    logger.error(
                        "llm_call_failed",
                        exc_info=True,
                        elapsed=elapsed,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(e),
                    )
                    raise LLMError(f"LLM invocation failed: {e}") from e

    async def invoke_with_structured_output(
        self,
        messages: list[BaseMessage] | str,
        output_schema: Type[SchemaT],
        timeout: int | None = None,
    ) -> SchemaT:
        """
        Invokes LLM in strict structured mode (function calling) and
        validates the arguments against the schema.

        Args:
            messages: Input messages or prompt
            output_schema: Pydantic model defining expected output structure
            timeout: Override default timeout (seconds)

        Returns:
            Validated instance of ``output_schema``

        Raises:
            LLMTimeoutError: If call exceeds timeout
            LLMError: If the call fails or the output does not match the schema
        """
        timeout = timeout or self.timeout
        start_time = time.time()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception_type((LLMError, LLMTimeoutError)),
            reraise=True,
        ):
            with attempt:
                try:
                    logger.info(
                        "llm_structured_call_started",
                        schema=output_schema.__name__,
                        timeout=timeout,
                        attempt=attempt.retry_state.attempt_number,
                    )

                    structured_model = self.model.bind_tools(
                        [output_schema], tool_choice=output_schema.__name__
                    )
                    async with self.semaphore:
                        response = await asyncio.wait_for(
                            structured_model.ainvoke(messages),
                            timeout=timeout,
                        )

                    elapsed = time.time() - start_time

                    if not getattr(response, "tool_calls", None):
                        raise LLMError(
                            f"Model did not return structured output "
                            f"for schema {output_schema.__name__}"
                        )

                    self._log_usage(response, elapsed)
                    return output_schema.model_validate(response.tool_calls[0]["args"])

                except asyncio.TimeoutError as e:
                    elapsed = time.time() - start_time
                    logger.error(
                        "llm_structured_call_timeout",
                        elapsed=elapsed,
                        timeout=timeout,
                        attempt=attempt.retry_state.attempt_number,
                        schema=output_schema.__name__,
                    )
                    raise LLMTimeoutError(
                        f"Structured output call exceeded timeout of {timeout}s"
                    ) from e
                except LLMError:
                    raise
                except ValidationError as e:
                    logger.warning(
                        "llm_structured_output_invalid",
                        schema=output_schema.__name__,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(e),
                    )
                    raise LLMError(
                        f"Output did not match {output_schema.__name__}: {e}"
                    ) from e
                except Exception as e:
                    elapsed = time.time() - start_time
                    logger.error(
                        "llm_structured_call_failed",
                        exc_info=True,
                        elapsed=elapsed,
                        attempt=attempt.retry_state.attempt_number,
                        schema=output_schema.__name__,
                        error=str(e),
                    )
                    raise LLMError(f"Structured output invocation failed: {e}") from e

    def _log_usage(self, response: BaseMessage, elapsed: float) -> None:
        """
        Logs token usage and adds it to the current turn metrics.

        Args:
            response: LLM response message
            elapsed: Elapsed time in seconds
        """
        usage = getattr(response, "usage_metadata", None)
        if usage:
            input_tokens = usage.get("input_tokens", 0)
            output_tokens = usage.get("output_tokens", 0)
            record_llm_usage(input_tokens, output_tokens)

            logger.info(
                "llm_usage",
                model=self.model_name,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=usage.get("total_tokens", input_tokens + output_tokens),
                elapsed=elapsed,
            )
        else:
            record_llm_usage(0, 0)
            logger.info("llm_call_completed", model=self.model_name, elapsed=elapsed)
