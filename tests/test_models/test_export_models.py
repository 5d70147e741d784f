"""Tests for export request and artifact models."""

from datetime import datetime, timezone

import pytest

from scribe_os.core.errors import ExportFormatError
from scribe_os.models.export import ExportArtifact, ExportFormat, PractitionerInfo


class TestExportFormat:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("pdf", ExportFormat.REPORT),
            ("PDF", ExportFormat.REPORT),
            ("csv", ExportFormat.TABLE),
            ("fhir", ExportFormat.BUNDLE),
            ("BUNDLE", ExportFormat.BUNDLE),
            (ExportFormat.TABLE, ExportFormat.TABLE),
        ],
    )
    def test_parse(self, raw, expected):
        assert ExportFormat.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["docx", "", None, 3])
    def test_parse_rejects_unknown(self, raw):
        with pytest.raises(ExportFormatError):
            ExportFormat.parse(raw)

    def test_media_types(self):
        assert ExportFormat.REPORT.media_type == "application/pdf"
        assert ExportFormat.TABLE.media_type == "text/csv"
        assert ExportFormat.BUNDLE.media_type == "application/fhir+json"


class TestExportArtifact:
    def test_size_and_file_name(self):
        artifact = ExportArtifact(
            format=ExportFormat.BUNDLE,
            source_session_ids=("a", "b"),
            content=b"{}",
            created_at=datetime(2024, 3, 9, 14, 5, 7, tzinfo=timezone.utc),
        )
        assert artifact.size_bytes == 2
        assert artifact.file_name == "export_sessions_20240309_140507.json"

    def test_artifact_is_immutable(self):
        artifact = ExportArtifact(format=ExportFormat.TABLE, source_session_ids=(), content=b"")
        with pytest.raises(Exception):
            artifact.content = b"changed"


def test_practitioner_display_name():
    assert PractitionerInfo(id="p1", first_name="Claire", last_name="Martin").display_name == "Dr. Claire Martin"
    assert PractitionerInfo(id="p1").display_name == "p1"
