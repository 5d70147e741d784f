"""Build the configured chat backend."""

import logging
from typing import Optional

from scribe_os.config import Settings, get_settings
from scribe_os.llm.anthropic_llm import AnthropicLLM
from scribe_os.llm.base import BaseLLM
from scribe_os.llm.local import OpenAICompatibleLLM

logger = logging.getLogger(__name__)


def create_llm_from_settings(settings: Optional[Settings] = None) -> BaseLLM:
    settings = settings or get_settings()

    if settings.llm_provider == "anthropic":
        if not settings.has_anthropic_key:
            raise ValueError("LLM_PROVIDER=anthropic requires ANTHROPIC_API_KEY")
        logger.info("Structuring backend: anthropic (%s)", settings.anthropic_model)
        return AnthropicLLM(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            timeout=settings.llm_timeout,
        )

    logger.info("Structuring backend: openai-compatible (%s)", settings.llm_model)
    return OpenAICompatibleLLM(
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
        api_key=settings.llm_api_key,
    )
