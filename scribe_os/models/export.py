"""Export request and artifact models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from scribe_os.core.errors import ExportFormatError
from scribe_os.models.session import SessionStatus


class ExportFormat(str, Enum):
    """Supported export encodings."""

    REPORT = "pdf"
    TABLE = "csv"
    BUNDLE = "fhir"

    @classmethod
    def parse(cls, value: "str | ExportFormat") -> "ExportFormat":
        """Accept enum members, values or names in any case."""
        if isinstance(value, ExportFormat):
            return value
        if isinstance(value, str):
            key = value.strip()
            for member in cls:
                if key.lower() == member.value or key.upper() == member.name:
                    return member
        raise ExportFormatError(f"Unsupported export format: {value!r}")

    @property
    def media_type(self) -> str:
        return {
            ExportFormat.REPORT: "application/pdf",
            ExportFormat.TABLE: "text/csv",
            ExportFormat.BUNDLE: "application/fhir+json",
        }[self]

    @property
    def extension(self) -> str:
        return {
            ExportFormat.REPORT: "pdf",
            ExportFormat.TABLE: "csv",
            ExportFormat.BUNDLE: "json",
        }[self]


class ExportOptions(BaseModel):
    include_transcription: bool = True
    include_notes: bool = True


class SessionFilter(BaseModel):
    """Owner-scoped session selection. Results come back newest first."""

    status: Optional[SessionStatus] = None
    patient_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    session_ids: Optional[list[str]] = None
    limit: int = Field(default=500, ge=1, le=5000)


class PractitionerInfo(BaseModel):
    """Exporting practitioner, as supplied by the credential context."""

    id: str
    first_name: str = ""
    last_name: str = ""
    specialty: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return f"Dr. {name}" if name else self.id


class ExportArtifact(BaseModel):
    """Immutable result of one export request."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    format: ExportFormat
    source_session_ids: tuple[str, ...]
    content: bytes = Field(repr=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    placeholder_session_ids: tuple[str, ...] = ()

    @computed_field
    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def file_name(self) -> str:
        stamp = self.created_at.strftime("%Y%m%d_%H%M%S")
        return f"export_sessions_{stamp}.{self.format.extension}"

    @property
    def media_type(self) -> str:
        return self.format.media_type


class ExportSummary(BaseModel):
    """Persisted export metadata, as listed in the export history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    format: ExportFormat
    file_name: str
    size_bytes: int
    source_session_ids: list[str] = Field(default_factory=list)
    created_at: datetime

    @property
    def media_type(self) -> str:
        return self.format.media_type
