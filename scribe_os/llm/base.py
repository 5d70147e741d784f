"""Abstract chat-completion interface."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(MessageRole.USER, content)


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: Optional[str] = None

    @property
    def input_tokens(self) -> int:
        return self.usage.get("input_tokens", 0) or self.usage.get("prompt_tokens", 0)

    @property
    def output_tokens(self) -> int:
        return self.usage.get("output_tokens", 0) or self.usage.get("completion_tokens", 0)


class LLMError(Exception):
    """Base exception for LLM errors."""

    pass


class LLMConnectionError(LLMError):
    pass


class LLMTimeoutError(LLMError):
    pass


class LLMOverloadError(LLMError):
    """Rate limited or temporarily unavailable."""

    pass


class LLMRequestError(LLMError):
    """Backend rejected the request (bad key, unknown model, invalid input)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMValidationError(LLMError):
    """Response was not the JSON object that was asked for."""

    pass


TRANSIENT_LLM_ERRORS = (LLMConnectionError, LLMTimeoutError, LLMOverloadError)


def strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[-1].strip() == "```":
            text = "\n".join(lines[1:-1])
        else:
            text = "\n".join(lines[1:])
    return text


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object.

    Raises:
        LLMValidationError: reply is not JSON or not an object
    """
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        # Replies echo clinical text, so only the size goes to the log.
        logger.error("Failed to parse JSON from LLM (%d chars): %s", len(content), e.msg)
        raise LLMValidationError(f"Invalid JSON in response: {e.msg}") from e
    if not isinstance(data, dict):
        raise LLMValidationError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class BaseLLM(ABC):
    """Abstract base class for chat-completion backends."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
            messages: Conversation messages, system prompt first
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Ask the backend for a single JSON object

        Raises:
            LLMConnectionError: If connection fails
            LLMTimeoutError: If request times out
            LLMOverloadError: If service is overloaded
        """

    async def complete_json(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.3,
        max_tokens: int = 2048,
    ) -> dict[str, Any]:
        """Generate a completion and parse it as a JSON object."""
        response = await self.complete(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )
        return parse_json_object(response.content)

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name, e.g. 'openai' or 'anthropic'."""
