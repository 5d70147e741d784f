"""Tests for the Whisper speech-to-text client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from scribe_os.speech.base import (
    SpeechConnectionError,
    SpeechOverloadError,
    SpeechResponseError,
    SpeechTimeoutError,
)
from scribe_os.speech.whisper import WhisperSpeechToText

REQUEST = httpx.Request("POST", "https://api.example/v1/audio/transcriptions")


def _speech(reply=None, error=None, language="fr") -> tuple[WhisperSpeechToText, MagicMock]:
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=reply, side_effect=error)
    return WhisperSpeechToText("https://api.example/v1", "key", language=language, client=client), client


class TestWhisperSpeechToText:
    async def test_transcribe(self):
        speech, client = _speech(SimpleNamespace(text="Bonjour", language="french", duration=12.5))

        result = await speech.transcribe(b"audio-bytes", "visit.webm")

        assert result.text == "Bonjour"
        assert result.duration_seconds == 12.5
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "fr"
        assert kwargs["file"] == ("visit.webm", b"audio-bytes")
        assert kwargs["response_format"] == "verbose_json"

    async def test_language_optional(self):
        speech, client = _speech(SimpleNamespace(text="Hello"), language=None)
        await speech.transcribe(b"a")
        assert "language" not in client.audio.transcriptions.create.call_args.kwargs

    @pytest.mark.parametrize(
        "error,expected,transient",
        [
            (openai.APITimeoutError(request=REQUEST), SpeechTimeoutError, True),
            (openai.APIConnectionError(request=REQUEST), SpeechConnectionError, True),
            (
                openai.RateLimitError("429", response=httpx.Response(429, request=REQUEST), body=None),
                SpeechOverloadError,
                True,
            ),
            (
                openai.BadRequestError("bad file", response=httpx.Response(400, request=REQUEST), body=None),
                SpeechResponseError,
                False,
            ),
        ],
    )
    async def test_error_mapping(self, error, expected, transient):
        speech, _ = _speech(error=error)
        with pytest.raises(expected) as exc_info:
            await speech.transcribe(b"a")
        assert exc_info.value.transient is transient

    async def test_response_without_text(self):
        speech, _ = _speech(SimpleNamespace(language="fr"))
        with pytest.raises(SpeechResponseError):
            await speech.transcribe(b"a")
