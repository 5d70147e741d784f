"""Anthropic Claude chat backend."""

import logging
from typing import Any, Optional

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)

from scribe_os.llm.base import (
    BaseLLM,
    LLMConnectionError,
    LLMOverloadError,
    LLMRequestError,
    LLMResponse,
    LLMTimeoutError,
    Message,
    MessageRole,
)

logger = logging.getLogger(__name__)

JSON_ONLY_SUFFIX = "\n\nRespond ONLY with a single JSON object, no other text."


class AnthropicLLM(BaseLLM):
    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        timeout: int = 60,
        client: AsyncAnthropic | None = None,
    ):
        self._model = model
        self._timeout = timeout
        self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def provider(self) -> str:
        return "anthropic"

    def _prepare_messages(
        self, messages: list[Message]
    ) -> tuple[Optional[str], list[dict[str, str]]]:
        """Split out the system prompt; the Messages API takes it separately."""
        system_content = None
        conversation = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_content = msg.content
            else:
                conversation.append(msg.to_dict())
        return system_content, conversation

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        system_content, conversation = self._prepare_messages(messages)
        if json_mode:
            system_content = (system_content or "") + JSON_ONLY_SUFFIX

        try:
            response = await self._client.messages.create(
                model=self._model,
                messages=conversation,
                system=system_content or "",
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except APITimeoutError as e:
            logger.error("Anthropic timeout after %ss", self._timeout)
            raise LLMTimeoutError(f"Anthropic request timed out after {self._timeout}s") from e
        except APIConnectionError as e:
            logger.error("Anthropic connection error: %s", type(e).__name__)
            raise LLMConnectionError("Failed to connect to Anthropic API") from e
        except (RateLimitError, InternalServerError) as e:
            logger.warning("Anthropic overloaded: %s", type(e).__name__)
            raise LLMOverloadError("Anthropic API rate limited or overloaded") from e
        except APIStatusError as e:
            if e.status_code >= 500:
                # 529 overloaded is not an InternalServerError subclass
                logger.warning("Anthropic unavailable: HTTP %s", e.status_code)
                raise LLMOverloadError("Anthropic API rate limited or overloaded") from e
            logger.error("Anthropic rejected request with HTTP %s", e.status_code)
            raise LLMRequestError(f"Anthropic request rejected (HTTP {e.status_code})", e.status_code) from e

        content = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            finish_reason=response.stop_reason,
        )

    async def health_check(self) -> bool:
        try:
            response = await self._client.messages.create(
                model=self._model,
                messages=[{"role": "user", "content": "Hi"}],
                max_tokens=10,
            )
            return len(response.content) > 0
        except Exception as e:
            logger.debug("Anthropic health check failed: %s", e)
            return False
