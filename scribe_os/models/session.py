"""Session lifecycle model: statuses, legal edges and field permissions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from scribe_os.models.clinical import CodingSuggestion, StructuredNote


class SessionStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    TRANSCRIBING = "TRANSCRIBING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ARCHIVED)


# The only edges transition() accepts. Degraded completion uses the same
# PROCESSING -> COMPLETED edge with the degraded flag set.
LEGAL_TRANSITIONS: frozenset[tuple[SessionStatus, SessionStatus]] = frozenset(
    {
        (SessionStatus.DRAFT, SessionStatus.IN_PROGRESS),
        (SessionStatus.IN_PROGRESS, SessionStatus.TRANSCRIBING),
        (SessionStatus.TRANSCRIBING, SessionStatus.PROCESSING),
        (SessionStatus.PROCESSING, SessionStatus.COMPLETED),
    }
)

AUDIO_ATTACHABLE = frozenset({SessionStatus.DRAFT, SessionStatus.IN_PROGRESS})


def is_legal_transition(current: SessionStatus, requested: SessionStatus) -> bool:
    return (current, requested) in LEGAL_TRANSITIONS


class CipherField(str, Enum):
    """Encrypted session columns."""

    TRANSCRIPT = "transcript"
    NOTES = "notes"
    CODING = "coding"

    @property
    def column(self) -> str:
        return f"{self.value}_cipher"


# Which cipher fields may be written while a session sits in a status.
# A transcript only exists from PROCESSING onward; notes and coding can be
# revised by the clinician after completion.
WRITABLE_FIELDS: dict[SessionStatus, frozenset[CipherField]] = {
    SessionStatus.PROCESSING: frozenset(
        {CipherField.TRANSCRIPT, CipherField.NOTES, CipherField.CODING}
    ),
    SessionStatus.COMPLETED: frozenset({CipherField.NOTES, CipherField.CODING}),
}


def field_writable(field: CipherField, status: SessionStatus) -> bool:
    return field in WRITABLE_FIELDS.get(status, frozenset())


class SessionRecord(BaseModel):
    """Detached snapshot of a persisted session. Cipher fields stay opaque."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    owner_id: str
    title: str
    status: SessionStatus
    patient_id: Optional[str] = None
    specialty: Optional[str] = None
    audio_ref: Optional[str] = None
    audio_duration_seconds: Optional[float] = None
    transcript_cipher: Optional[str] = None
    notes_cipher: Optional[str] = None
    coding_cipher: Optional[str] = None
    degraded: bool = False
    degraded_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "completed_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def cipher(self, field: CipherField) -> Optional[str]:
        return getattr(self, field.column)

    @property
    def has_transcript(self) -> bool:
        return self.transcript_cipher is not None

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.audio_duration_seconds is None:
            return None
        return round(self.audio_duration_seconds / 60)


class SessionView(BaseModel):
    """Decrypted, owner-facing view of a session."""

    id: str
    title: str
    status: SessionStatus
    degraded: bool = False
    degraded_reason: Optional[str] = None
    patient_id: Optional[str] = None
    specialty: Optional[str] = None
    audio_ref: Optional[str] = None
    audio_duration_seconds: Optional[float] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    transcript: Optional[str] = None
    notes: Optional[StructuredNote] = None
    coding: Optional[CodingSuggestion] = None


class SessionSummary(BaseModel):
    """Listing shape: status and metadata, no clinical content."""

    id: str
    title: str
    status: SessionStatus
    degraded: bool = False
    degraded_reason: Optional[str] = None
    patient_id: Optional[str] = None
    specialty: Optional[str] = None
    audio_duration_seconds: Optional[float] = None
    has_audio: bool = False
    has_transcript: bool = False
    has_notes: bool = False
    has_coding: bool = False
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionSummary":
        return cls(
            id=record.id,
            title=record.title,
            status=record.status,
            degraded=record.degraded,
            degraded_reason=record.degraded_reason,
            patient_id=record.patient_id,
            specialty=record.specialty,
            audio_duration_seconds=record.audio_duration_seconds,
            has_audio=record.audio_ref is not None,
            has_transcript=record.transcript_cipher is not None,
            has_notes=record.notes_cipher is not None,
            has_coding=record.coding_cipher is not None,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )
