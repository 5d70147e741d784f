"""Chat-completion backends used for note structuring and coding."""

from scribe_os.llm.base import (
    BaseLLM,
    LLMError,
    LLMResponse,
    Message,
    MessageRole,
)
from scribe_os.llm.factory import create_llm_from_settings

__all__ = [
    "BaseLLM",
    "LLMError",
    "LLMResponse",
    "Message",
    "MessageRole",
    "create_llm_from_settings",
]
