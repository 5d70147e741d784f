"""Tests for the session report PDF generator."""

import re
from datetime import datetime, timezone

import pytest

from scribe_os.export import pdf_generator
from scribe_os.export.common import PLACEHOLDER, ExportEntry
from scribe_os.export.pdf_generator import generate_report_pdf
from scribe_os.models.clinical import PatientContext, StructuredNote
from scribe_os.models.export import ExportOptions, PractitionerInfo

PRACTITIONER = PractitionerInfo(id="p1", first_name="Claire", last_name="Martin", specialty="CARDIOLOGY")


def _entry(i: int = 1, transcript: str = "Patient describes chest tightness on exertion.", **overrides):
    values = dict(
        session_id=f"s{i}",
        title=f"Consultation {i}",
        created_at=datetime(2024, 3, 9, tzinfo=timezone.utc),
        completed_at=datetime(2024, 3, 9, 1, tzinfo=timezone.utc),
        patient=PatientContext(first_name="Jeanne", last_name="Durand"),
        duration_minutes=15,
        transcript=transcript,
        note=StructuredNote(subjective="tightness", objective="BP 140/90", assessment="angina?", plan="ECG"),
    )
    values.update(overrides)
    return ExportEntry(**values)


def _page_count(pdf: bytes) -> int:
    return len(re.findall(rb"/Type /Page\b", pdf))


@pytest.fixture
def rendered(monkeypatch):
    """Collect every string the renderer writes."""
    seen: list[str] = []
    original = pdf_generator._Cursor.text

    def recording(self, text, **kwargs):
        seen.append(text)
        return original(self, text, **kwargs)

    monkeypatch.setattr(pdf_generator._Cursor, "text", recording)
    return seen


class TestGenerateReportPDF:
    def test_returns_pdf_bytes(self):
        result = generate_report_pdf([_entry()], ExportOptions(), practitioner=PRACTITIONER)
        assert isinstance(result, bytes)
        assert result[:5] == b"%PDF-"

    def test_title_block(self, rendered):
        generate_report_pdf([_entry()], ExportOptions(), practitioner=PRACTITIONER)

        assert "Session Export" in rendered
        assert "Practitioner: Dr. Claire Martin" in rendered
        assert "Sessions: 1" in rendered
        assert "1. Consultation 1" in rendered

    def test_transcript_truncated(self, rendered):
        generate_report_pdf([_entry(transcript="x" * 800)], ExportOptions(), transcript_cap=500)
        assert "x" * 500 + "..." in rendered

    def test_excluded_sections_never_rendered(self, rendered):
        options = ExportOptions(include_transcription=False, include_notes=False)
        generate_report_pdf([_entry()], options)

        joined = "\n".join(rendered)
        assert "chest tightness" not in joined
        assert "Transcription:" not in joined
        assert "SOAP Notes:" not in joined

    def test_placeholder_not_truncated(self, rendered):
        generate_report_pdf(
            [_entry(transcript=None, transcript_failed=True)], ExportOptions(), transcript_cap=10
        )
        assert PLACEHOLDER in rendered

    def test_degraded_entry_flagged(self, rendered):
        generate_report_pdf([_entry(degraded=True, note=None)], ExportOptions())
        assert any("Notes incomplete" in t for t in rendered)

    def test_many_entries_paginate(self):
        entries = [_entry(i, transcript="word " * 120) for i in range(1, 41)]
        result = generate_report_pdf(entries, ExportOptions())
        assert _page_count(result) > 1

    def test_single_entry_single_page(self):
        assert _page_count(generate_report_pdf([_entry()], ExportOptions())) == 1

    def test_long_section_wraps_across_pages(self):
        note = StructuredNote(subjective="s " * 4000, objective="o", assessment="a", plan="p")
        result = generate_report_pdf([_entry(note=note)], ExportOptions())
        assert _page_count(result) > 1

    def test_non_latin_text_is_sanitized(self):
        result = generate_report_pdf(
            [_entry(title="Suivi — cœur … 漢")], ExportOptions(), clinic_name="Cabinet ’A’"
        )
        assert result[:5] == b"%PDF-"

    def test_empty_export(self):
        result = generate_report_pdf([], ExportOptions())
        assert result[:5] == b"%PDF-"


class TestPagination:
    """Entries start a new page when the cursor is past ``page_break_y``."""

    HEADINGS_ONLY = ExportOptions(include_transcription=False, include_notes=False)

    def test_low_threshold_breaks_before_each_entry(self):
        entries = [_entry(i) for i in range(1, 4)]
        result = generate_report_pdf(entries, self.HEADINGS_ONLY, page_break_y=pdf_generator.TOP)
        # title page, then one page per entry
        assert _page_count(result) == 4

    def test_tall_entries_follow_threshold(self):
        entries = [_entry(i, transcript="word " * 100) for i in (1, 2)]

        broken = generate_report_pdf(entries, ExportOptions(), page_break_y=100)
        kept = generate_report_pdf(entries, ExportOptions(), page_break_y=250)

        assert _page_count(broken) == 2
        assert _page_count(kept) == 1

    def test_many_short_entries_under_high_threshold_stay_on_one_page(self):
        entries = [_entry(i) for i in range(1, 11)]
        result = generate_report_pdf(entries, self.HEADINGS_ONLY, page_break_y=265)
        assert _page_count(result) == 1
