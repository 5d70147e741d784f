"""Pydantic domain models."""

from scribe_os.models.clinical import (
    CodingSuggestion,
    DocumentKind,
    MedicalSpecialty,
    PatientContext,
    StructuredNote,
)
from scribe_os.models.document import DocumentPage, DocumentSummary, DocumentView
from scribe_os.models.export import (
    ExportArtifact,
    ExportFormat,
    ExportOptions,
    ExportSummary,
    PractitionerInfo,
    SessionFilter,
)
from scribe_os.models.session import (
    CipherField,
    SessionRecord,
    SessionStatus,
    SessionSummary,
    SessionView,
)

__all__ = [
    "CipherField",
    "CodingSuggestion",
    "DocumentKind",
    "DocumentPage",
    "DocumentSummary",
    "DocumentView",
    "ExportArtifact",
    "ExportFormat",
    "ExportOptions",
    "ExportSummary",
    "MedicalSpecialty",
    "PatientContext",
    "PractitionerInfo",
    "SessionFilter",
    "SessionRecord",
    "SessionStatus",
    "SessionSummary",
    "SessionView",
    "StructuredNote",
]
