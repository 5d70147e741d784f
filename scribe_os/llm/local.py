"""Chat backend for OpenAI and OpenAI-compatible servers."""

import logging
from typing import Any

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
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
)

logger = logging.getLogger(__name__)


class OpenAICompatibleLLM(BaseLLM):
    """OpenAI chat completions (api.openai.com, vLLM, Ollama, ...)."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: int = 60,
        api_key: str = "not-needed",
        client: AsyncOpenAI | None = None,
    ):
        self._base_url = base_url
        self._model = model
        self._timeout = timeout
        self._client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "not-needed",
            timeout=httpx.Timeout(timeout, connect=10.0),
            max_retries=0,
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def provider(self) -> str:
        return "openai"

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.to_dict() for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except APITimeoutError as e:
            logger.error("Chat completion timed out after %ss", self._timeout)
            raise LLMTimeoutError(f"Chat request timed out after {self._timeout}s") from e
        except APIConnectionError as e:
            logger.error("Chat completion connection error: %s", type(e).__name__)
            raise LLMConnectionError(f"Failed to connect to {self._base_url}") from e
        except (RateLimitError, InternalServerError) as e:
            logger.warning("Chat backend overloaded: %s", type(e).__name__)
            raise LLMOverloadError("Chat backend is overloaded") from e
        except APIStatusError as e:
            logger.error("Chat completion rejected with HTTP %s", e.status_code)
            raise LLMRequestError(f"Chat request rejected (HTTP {e.status_code})", e.status_code) from e

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
                "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            },
            finish_reason=choice.finish_reason,
        )

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except Exception as e:
            logger.debug("Chat backend health check failed: %s", e)
            return False
