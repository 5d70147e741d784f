"""Tests for the transcription and structuring adapter."""

import asyncio

import pytest

from conftest import CODING_REPLY, SOAP_REPLY, FakeLLM, FakeSpeech
from scribe_os.core.errors import CodingError, DocumentError, StructuringError, TranscriptionError
from scribe_os.llm.base import LLMConnectionError, LLMOverloadError, LLMRequestError, LLMValidationError
from scribe_os.models.clinical import (
    AI_DISCLAIMER,
    DRAFT_MARKER,
    DocumentKind,
    MedicalSpecialty,
    PatientContext,
    StructuredNote,
)
from scribe_os.scribe.adapter import ScribeAdapter
from scribe_os.speech.base import (
    SpeechConnectionError,
    SpeechResponseError,
    SpeechTimeoutError,
    TranscriptResult,
)

NOTE = StructuredNote.model_validate(SOAP_REPLY)


class _SlowSpeech(FakeSpeech):
    async def transcribe(self, audio, filename="audio.webm"):
        await asyncio.sleep(1)
        return TranscriptResult("late")


def _adapter(speech=None, llm=None, **kwargs) -> ScribeAdapter:
    return ScribeAdapter(speech or FakeSpeech(), llm or FakeLLM(), **kwargs)


class TestTranscribe:
    async def test_success(self):
        result = await _adapter(FakeSpeech([TranscriptResult("Bonjour docteur", "fr", 30.0)])).transcribe(
            b"audio", "a.webm"
        )
        assert result.text == "Bonjour docteur"
        assert result.duration_seconds == 30.0

    @pytest.mark.parametrize("error", [SpeechConnectionError("down"), SpeechTimeoutError("slow")])
    async def test_transport_failures_are_retryable(self, error):
        with pytest.raises(TranscriptionError) as exc_info:
            await _adapter(FakeSpeech([error])).transcribe(b"audio")
        assert exc_info.value.retryable is True

    async def test_rejected_request_is_not_retryable(self):
        with pytest.raises(TranscriptionError) as exc_info:
            await _adapter(FakeSpeech([SpeechResponseError("HTTP 400")])).transcribe(b"audio")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "SpeechResponseError"

    async def test_timeout_is_retryable(self):
        adapter = _adapter(_SlowSpeech(), transcription_timeout=0.05)
        with pytest.raises(TranscriptionError) as exc_info:
            await adapter.transcribe(b"audio")
        assert exc_info.value.retryable is True
        assert exc_info.value.reason == "timeout"

    async def test_blank_transcript_is_invalid(self):
        with pytest.raises(TranscriptionError) as exc_info:
            await _adapter(FakeSpeech([TranscriptResult("   ")])).transcribe(b"audio")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "empty_transcript"

    async def test_empty_audio_never_reaches_backend(self):
        speech = FakeSpeech()
        with pytest.raises(TranscriptionError):
            await _adapter(speech).transcribe(b"")
        assert speech.calls == []

    async def test_external_call_is_observed(self, obs):
        adapter = _adapter(FakeSpeech([SpeechConnectionError("down")]), observability=obs)
        with pytest.raises(TranscriptionError):
            await adapter.transcribe(b"audio", session_id="s1")

        event = obs.get_recent_events("external")[-1]
        assert event["operation"] == "transcription"
        assert event["session_id"] == "s1"
        assert event["retryable"] is True


class TestStructureNotes:
    async def test_success_uses_json_mode_and_temperature(self):
        llm = FakeLLM([SOAP_REPLY])
        note = await _adapter(llm=llm).structure_notes("transcript", MedicalSpecialty.CARDIOLOGY)

        assert note.assessment == "Viral pharyngitis"
        assert llm.calls[0]["json_mode"] is True
        assert llm.calls[0]["temperature"] == 0.3
        assert "cardiology" in llm.calls[0]["messages"][0].content

    async def test_fenced_json_is_accepted(self):
        import json

        llm = FakeLLM(["```json\n" + json.dumps(SOAP_REPLY) + "\n```"])
        note = await _adapter(llm=llm).structure_notes("transcript")
        assert note.plan == SOAP_REPLY["plan"]

    async def test_missing_section_is_invalid(self):
        reply = {k: v for k, v in SOAP_REPLY.items() if k != "plan"}
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=FakeLLM([reply])).structure_notes("transcript")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "invalid_shape"

    async def test_all_blank_sections_are_invalid(self):
        reply = {"subjective": "", "objective": "", "assessment": " ", "plan": ""}
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=FakeLLM([reply])).structure_notes("transcript")
        assert exc_info.value.reason == "empty_note"

    async def test_non_json_reply_is_not_retryable(self):
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=FakeLLM(["Here are your notes: ..."])).structure_notes("transcript")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == LLMValidationError.__name__

    @pytest.mark.parametrize("error", [LLMConnectionError("down"), LLMOverloadError("429")])
    async def test_transport_failures_are_retryable(self, error):
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=FakeLLM([error])).structure_notes("transcript")
        assert exc_info.value.retryable is True

    async def test_rejected_request_is_not_retryable(self):
        llm = FakeLLM([LLMRequestError("Chat request rejected (HTTP 401)", 401)])
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=llm).structure_notes("transcript")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "LLMRequestError"

    async def test_unmapped_backend_error_is_wrapped(self):
        with pytest.raises(StructuringError) as exc_info:
            await _adapter(llm=FakeLLM([RuntimeError("sdk bug")])).structure_notes("transcript")
        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "RuntimeError"
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestSuggestCoding:
    async def test_success_is_draft(self):
        llm = FakeLLM([CODING_REPLY])
        coding = await _adapter(llm=llm).suggest_coding(NOTE)

        assert coding.icd10 == "J02.9"
        assert coding.ccam is None
        assert coding.review_status == DRAFT_MARKER
        assert llm.calls[0]["temperature"] == 0.2

    async def test_model_cannot_approve_its_own_codes(self):
        reply = dict(CODING_REPLY, review_status="approved")
        coding = await _adapter(llm=FakeLLM([reply])).suggest_coding(NOTE)
        assert coding.review_status == DRAFT_MARKER

    async def test_missing_explanation_is_invalid(self):
        reply = {k: v for k, v in CODING_REPLY.items() if k != "explanation"}
        with pytest.raises(CodingError) as exc_info:
            await _adapter(llm=FakeLLM([reply])).suggest_coding(NOTE)
        assert exc_info.value.retryable is False


class TestDraftDocument:
    async def test_disclaimer_appended(self):
        llm = FakeLLM(["Dear colleague,\nI saw your patient today."])
        text = await _adapter(llm=llm).draft_document(
            DocumentKind.LETTER, NOTE, PatientContext(first_name="Jeanne", last_name="Durand")
        )

        assert text.startswith("Dear colleague")
        assert text.endswith(AI_DISCLAIMER)
        assert llm.calls[0]["json_mode"] is False
        assert "Jeanne" in llm.calls[0]["messages"][1].content

    async def test_disclaimer_not_duplicated(self):
        text = await _adapter(llm=FakeLLM([f"Report body\n\n{AI_DISCLAIMER}"])).draft_document(
            DocumentKind.REPORT, NOTE
        )
        assert text.count(AI_DISCLAIMER) == 1

    async def test_empty_document(self):
        with pytest.raises(DocumentError):
            await _adapter(llm=FakeLLM(["   "])).draft_document(DocumentKind.CERTIFICATE, NOTE)
