"""Speech-to-text backends."""

from scribe_os.speech.base import (
    BaseSpeechToText,
    SpeechConnectionError,
    SpeechError,
    SpeechOverloadError,
    SpeechResponseError,
    SpeechTimeoutError,
    TranscriptResult,
)
from scribe_os.speech.whisper import WhisperSpeechToText, create_speech_from_settings

__all__ = [
    "BaseSpeechToText",
    "SpeechConnectionError",
    "SpeechError",
    "SpeechOverloadError",
    "SpeechResponseError",
    "SpeechTimeoutError",
    "TranscriptResult",
    "WhisperSpeechToText",
    "create_speech_from_settings",
]
