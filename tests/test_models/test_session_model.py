"""Tests for session lifecycle rules and clinical shapes."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from scribe_os.models.clinical import DRAFT_MARKER, CodingSuggestion, MedicalSpecialty, StructuredNote
from scribe_os.models.session import (
    LEGAL_TRANSITIONS,
    CipherField,
    SessionRecord,
    SessionStatus,
    SessionSummary,
    field_writable,
    is_legal_transition,
)


class TestStateMachine:
    def test_forward_edges_only(self):
        assert is_legal_transition(SessionStatus.DRAFT, SessionStatus.IN_PROGRESS)
        assert is_legal_transition(SessionStatus.PROCESSING, SessionStatus.COMPLETED)
        assert not is_legal_transition(SessionStatus.DRAFT, SessionStatus.COMPLETED)
        assert not is_legal_transition(SessionStatus.PROCESSING, SessionStatus.TRANSCRIBING)
        assert not is_legal_transition(SessionStatus.COMPLETED, SessionStatus.ARCHIVED)

    def test_terminal_statuses_have_no_outgoing_edges(self):
        for current, _ in LEGAL_TRANSITIONS:
            assert not current.is_terminal

    def test_field_permissions(self):
        assert field_writable(CipherField.TRANSCRIPT, SessionStatus.PROCESSING)
        assert not field_writable(CipherField.TRANSCRIPT, SessionStatus.TRANSCRIBING)
        assert not field_writable(CipherField.TRANSCRIPT, SessionStatus.COMPLETED)
        assert field_writable(CipherField.NOTES, SessionStatus.COMPLETED)
        assert not field_writable(CipherField.CODING, SessionStatus.ARCHIVED)

    def test_cipher_column_names(self):
        assert CipherField.TRANSCRIPT.column == "transcript_cipher"
        assert CipherField.CODING.column == "coding_cipher"


class TestSessionRecord:
    def test_naive_datetimes_become_utc(self):
        record = SessionRecord(
            id="s1", owner_id="p1", title="t", status=SessionStatus.DRAFT, created_at=datetime(2024, 5, 1, 9, 30)
        )
        assert record.created_at.tzinfo is not None

    @pytest.mark.parametrize("seconds,minutes", [(None, None), (29, 0), (90, 2), (125, 2), (151, 3)])
    def test_duration_minutes_rounds(self, seconds, minutes):
        record = SessionRecord(
            id="s1",
            owner_id="p1",
            title="t",
            status=SessionStatus.COMPLETED,
            created_at=datetime(2024, 5, 1),
            audio_duration_seconds=seconds,
        )
        assert record.duration_minutes == minutes

    def test_summary_hides_content(self):
        record = SessionRecord(
            id="s1",
            owner_id="p1",
            title="t",
            status=SessionStatus.PROCESSING,
            created_at=datetime(2024, 5, 1),
            audio_ref="s1/a.webm.enc",
            transcript_cipher="gAAAA-token",
        )
        summary = SessionSummary.from_record(record)

        assert summary.has_audio and summary.has_transcript
        assert not summary.has_notes
        assert "gAAAA-token" not in summary.model_dump_json()


class TestClinicalShapes:
    def test_note_requires_all_sections(self):
        with pytest.raises(ValidationError):
            StructuredNote.model_validate({"subjective": "a", "objective": "b", "assessment": "c"})

    def test_note_flatten_and_blank(self):
        note = StructuredNote(subjective="s", objective="o", assessment="a", plan="p")
        assert note.flatten() == "S: s | O: o | A: a | P: p"
        assert not note.is_blank()
        assert StructuredNote(subjective=" ", objective="", assessment="", plan="").is_blank()

    def test_coding_is_always_a_draft(self):
        coding = CodingSuggestion(icd10="J02.9", ccam="  ", explanation="pharyngitis")
        assert coding.review_status == DRAFT_MARKER
        assert coding.codes == {"icd10": "J02.9"}

        with pytest.raises(ValidationError):
            CodingSuggestion(icd10="J02.9", explanation="x", review_status="approved")

    def test_coding_needs_explanation(self):
        with pytest.raises(ValidationError):
            CodingSuggestion(icd10="J02.9", explanation="   ")

    def test_specialty_label(self):
        assert MedicalSpecialty.GENERAL_PRACTICE.label == "General Practice"
