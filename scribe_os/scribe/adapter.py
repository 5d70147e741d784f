"""Transcription & structuring adapter.

Wraps one speech-to-text backend and one chat backend and maps their
outputs onto the clinical shapes. Each call is a single request bounded by
a timeout; there is no retry here. Backend failures become the domain
error family with ``retryable`` set for transport problems (connection,
timeout, overload) and cleared for responses that do not parse into the
expected shape.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from pydantic import ValidationError

from scribe_os.core.errors import (
    CodingError,
    DocumentError,
    ExternalServiceError,
    StructuringError,
    TranscriptionError,
)
from scribe_os.llm.base import TRANSIENT_LLM_ERRORS, BaseLLM, LLMError
from scribe_os.models.clinical import (
    AI_DISCLAIMER,
    CodingSuggestion,
    DocumentKind,
    MedicalSpecialty,
    PatientContext,
    StructuredNote,
)
from scribe_os.observability import ObservabilityLogger
from scribe_os.scribe import prompts
from scribe_os.speech.base import BaseSpeechToText, SpeechError, TranscriptResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScribeAdapter:
    def __init__(
        self,
        speech: BaseSpeechToText,
        llm: BaseLLM,
        *,
        observability: Optional[ObservabilityLogger] = None,
        transcription_timeout: float = 120.0,
        structuring_timeout: float = 60.0,
        notes_temperature: float = 0.3,
        coding_temperature: float = 0.2,
    ):
        self.speech = speech
        self.llm = llm
        self.obs = observability
        self.transcription_timeout = transcription_timeout
        self.structuring_timeout = structuring_timeout
        self.notes_temperature = notes_temperature
        self.coding_temperature = coding_temperature

    @classmethod
    def from_settings(cls, speech: BaseSpeechToText, llm: BaseLLM, settings, observability=None) -> "ScribeAdapter":
        return cls(
            speech,
            llm,
            observability=observability,
            transcription_timeout=settings.stt_timeout,
            structuring_timeout=settings.llm_timeout,
            notes_temperature=settings.notes_temperature,
            coding_temperature=settings.coding_temperature,
        )

    async def _bounded(
        self,
        awaitable: Awaitable[T],
        *,
        error_cls: type[ExternalServiceError],
        timeout: float,
        provider: str,
        model: str,
        input_size: int,
        session_id: Optional[str],
    ) -> T:
        """Await one backend call under a timeout, translating its failures."""
        operation = error_cls.operation
        if self.obs is None:
            return await self._translate(awaitable, error_cls, timeout)
        with self.obs.external_call(
            provider, model, operation, session_id=session_id, input_size=input_size
        ):
            return await self._translate(awaitable, error_cls, timeout)

    async def _translate(
        self,
        awaitable: Awaitable[T],
        error_cls: type[ExternalServiceError],
        timeout: float,
    ) -> T:
        operation = error_cls.operation
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("%s timed out after %ss", operation, timeout)
            raise error_cls(f"{operation} timed out after {timeout}s", retryable=True, reason="timeout") from e
        except SpeechError as e:
            raise error_cls(
                f"{operation} failed: {e}", retryable=e.transient, reason=type(e).__name__
            ) from e
        except TRANSIENT_LLM_ERRORS as e:
            raise error_cls(f"{operation} failed: {e}", retryable=True, reason=type(e).__name__) from e
        except LLMError as e:
            raise error_cls(f"{operation} failed: {e}", retryable=False, reason=type(e).__name__) from e
        except ExternalServiceError:
            raise
        except Exception as e:
            # Unmapped backend failure; never let it escape as a raw SDK error.
            logger.error("%s failed with unexpected %s", operation, type(e).__name__)
            raise error_cls(f"{operation} failed", retryable=False, reason=type(e).__name__) from e

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "audio.webm",
        *,
        session_id: Optional[str] = None,
    ) -> TranscriptResult:
        """Speech to text.

        Raises:
            TranscriptionError: transport failure or timeout (retryable), or
                a rejected request / blank transcript (not retryable)
        """
        if not audio:
            raise TranscriptionError("No audio to transcribe", retryable=False, reason="empty_audio")

        result = await self._bounded(
            self.speech.transcribe(audio, filename),
            error_cls=TranscriptionError,
            timeout=self.transcription_timeout,
            provider=self.speech.provider,
            model=self.speech.model_name,
            input_size=len(audio),
            session_id=session_id,
        )
        if not result.text.strip():
            raise TranscriptionError("Transcription returned no text", retryable=False, reason="empty_transcript")
        return result

    async def _complete_json(
        self,
        messages,
        *,
        temperature: float,
        error_cls: type[ExternalServiceError],
        session_id: Optional[str],
    ) -> dict[str, Any]:
        return await self._bounded(
            self.llm.complete_json(messages, temperature=temperature),
            error_cls=error_cls,
            timeout=self.structuring_timeout,
            provider=self.llm.provider,
            model=self.llm.model_name,
            input_size=sum(len(m.content) for m in messages),
            session_id=session_id,
        )

    async def structure_notes(
        self,
        transcript: str,
        specialty: Optional[MedicalSpecialty] = None,
        *,
        session_id: Optional[str] = None,
    ) -> StructuredNote:
        """Transcript to SOAP note.

        Raises:
            StructuringError: backend failure, or a reply missing any of the
                four sections or with all four empty
        """
        data = await self._complete_json(
            prompts.soap_messages(transcript, specialty),
            temperature=self.notes_temperature,
            error_cls=StructuringError,
            session_id=session_id,
        )
        try:
            note = StructuredNote.model_validate(data)
        except ValidationError as e:
            raise StructuringError(
                f"Structuring reply has the wrong shape ({e.error_count()} error(s))",
                reason="invalid_shape",
            ) from e
        if note.is_blank():
            raise StructuringError("Structuring reply has only empty sections", reason="empty_note")
        return note

    async def suggest_coding(
        self,
        note: StructuredNote,
        specialty: Optional[MedicalSpecialty] = None,
        *,
        session_id: Optional[str] = None,
    ) -> CodingSuggestion:
        """SOAP note to advisory codes, always marked as a draft."""
        data = await self._complete_json(
            prompts.coding_messages(note, specialty),
            temperature=self.coding_temperature,
            error_cls=CodingError,
            session_id=session_id,
        )
        # The review marker is ours to set, not the model's.
        data.pop("review_status", None)
        try:
            return CodingSuggestion.model_validate(data)
        except ValidationError as e:
            raise CodingError(
                f"Coding reply has the wrong shape ({e.error_count()} error(s))",
                reason="invalid_shape",
            ) from e

    async def draft_document(
        self,
        kind: DocumentKind,
        note: StructuredNote,
        patient: Optional[PatientContext] = None,
        specialty: Optional[MedicalSpecialty] = None,
    ) -> str:
        """Draft a clinical document. The result always ends with the AI disclaimer."""
        messages = prompts.document_messages(kind, note, patient, specialty)
        response = await self._bounded(
            self.llm.complete(messages, temperature=self.notes_temperature),
            error_cls=DocumentError,
            timeout=self.structuring_timeout,
            provider=self.llm.provider,
            model=self.llm.model_name,
            input_size=sum(len(m.content) for m in messages),
            session_id=None,
        )
        text = response.content.strip()
        if not text:
            raise DocumentError("Document reply was empty", reason="empty_document")
        if AI_DISCLAIMER not in text:
            text = f"{text}\n\n{AI_DISCLAIMER}"
        return text
