"""Speech-to-text contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class TranscriptResult:
    text: str
    language: Optional[str] = None
    duration_seconds: Optional[float] = None


class SpeechError(Exception):
    """Base exception for speech-to-text errors."""

    transient = False


class SpeechConnectionError(SpeechError):
    transient = True


class SpeechTimeoutError(SpeechError):
    transient = True


class SpeechOverloadError(SpeechError):
    transient = True


class SpeechResponseError(SpeechError):
    """The service answered, but not with a usable transcript."""


class BaseSpeechToText(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> TranscriptResult:
        """Transcribe one audio payload.

        Raises:
            SpeechConnectionError, SpeechTimeoutError, SpeechOverloadError:
                transient transport failures
            SpeechResponseError: rejected request or malformed response
        """

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass

    @property
    @abstractmethod
    def provider(self) -> str:
        pass
