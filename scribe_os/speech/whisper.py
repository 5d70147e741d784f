"""OpenAI-compatible ``/audio/transcriptions`` client."""

import logging
from typing import Optional

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)

from scribe_os.config import Settings, get_settings
from scribe_os.speech.base import (
    BaseSpeechToText,
    SpeechConnectionError,
    SpeechOverloadError,
    SpeechResponseError,
    SpeechTimeoutError,
    TranscriptResult,
)

logger = logging.getLogger(__name__)


class WhisperSpeechToText(BaseSpeechToText):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str = "whisper-1",
        language: Optional[str] = "fr",
        timeout: int = 120,
        client: AsyncOpenAI | None = None,
    ):
        self._base_url = base_url
        self._model = model
        self._language = language
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

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> TranscriptResult:
        kwargs = {"model": self._model, "file": (filename, audio), "response_format": "verbose_json"}
        if self._language:
            kwargs["language"] = self._language

        try:
            response = await self._client.audio.transcriptions.create(**kwargs)
        except APITimeoutError as e:
            logger.error("Transcription timed out after %ss", self._timeout)
            raise SpeechTimeoutError(f"Transcription timed out after {self._timeout}s") from e
        except APIConnectionError as e:
            logger.error("Transcription connection error: %s", type(e).__name__)
            raise SpeechConnectionError(f"Failed to connect to {self._base_url}") from e
        except (RateLimitError, InternalServerError) as e:
            logger.warning("Transcription service overloaded: %s", type(e).__name__)
            raise SpeechOverloadError("Transcription service is overloaded") from e
        except APIStatusError as e:
            logger.error("Transcription rejected with HTTP %s", e.status_code)
            raise SpeechResponseError(f"Transcription rejected (HTTP {e.status_code})") from e

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise SpeechResponseError("Transcription response has no text")
        return TranscriptResult(
            text=text,
            language=getattr(response, "language", None),
            duration_seconds=getattr(response, "duration", None),
        )


def create_speech_from_settings(settings: Optional[Settings] = None) -> WhisperSpeechToText:
    settings = settings or get_settings()
    return WhisperSpeechToText(
        base_url=settings.stt_base_url,
        api_key=settings.stt_api_key,
        model=settings.stt_model,
        language=settings.stt_language or None,
        timeout=settings.stt_timeout,
    )
