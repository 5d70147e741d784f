"""Decryption and projection shared by every export format.

Each format works from the same ``ExportEntry`` list, so the inclusion
flags and the placeholder rule are applied once. A field that fails to
decrypt is replaced by ``PLACEHOLDER`` for that session only; the rest of
the batch is unaffected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from pydantic import ValidationError

from scribe_os.core.errors import CipherError
from scribe_os.crypto.cipher import FieldCipher
from scribe_os.models.clinical import PatientContext, StructuredNote
from scribe_os.models.export import ExportOptions
from scribe_os.models.session import SessionRecord

logger = logging.getLogger(__name__)

PLACEHOLDER = "[content unavailable: decryption failed]"


@dataclass
class ExportEntry:
    session_id: str
    title: str
    created_at: datetime
    completed_at: Optional[datetime]
    patient: Optional[PatientContext]
    duration_minutes: Optional[int]
    degraded: bool = False
    transcript: Optional[str] = None
    note: Optional[StructuredNote] = None
    transcript_failed: bool = False
    notes_failed: bool = False

    @property
    def has_placeholder(self) -> bool:
        return self.transcript_failed or self.notes_failed

    @property
    def patient_name(self) -> str:
        return self.patient.display_name if self.patient else ""

    @property
    def transcript_text(self) -> Optional[str]:
        if self.transcript_failed:
            return PLACEHOLDER
        return self.transcript

    @property
    def soap_line(self) -> Optional[str]:
        if self.notes_failed:
            return PLACEHOLDER
        return self.note.flatten() if self.note else None


def format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def project_sessions(
    records: Sequence[SessionRecord],
    cipher: FieldCipher,
    options: ExportOptions,
    patients: Optional[dict[str, PatientContext]] = None,
) -> list[ExportEntry]:
    """Decrypt the requested fields of each record, in input order.

    Fields whose flag is off are never decrypted.
    """
    patients = patients or {}
    entries = []
    for record in records:
        entry = ExportEntry(
            session_id=record.id,
            title=record.title,
            created_at=record.created_at,
            completed_at=record.completed_at,
            patient=patients.get(record.patient_id) if record.patient_id else None,
            duration_minutes=record.duration_minutes,
            degraded=record.degraded,
        )

        if options.include_transcription and record.transcript_cipher:
            try:
                entry.transcript = cipher.decrypt_text(record.transcript_cipher)
            except CipherError:
                logger.error("Export: transcript of session %s could not be decrypted", record.id)
                entry.transcript_failed = True

        if options.include_notes and record.notes_cipher:
            try:
                entry.note = StructuredNote.model_validate(cipher.decrypt_json(record.notes_cipher))
            except (CipherError, ValidationError) as e:
                logger.error(
                    "Export: notes of session %s unusable (%s)", record.id, type(e).__name__
                )
                entry.notes_failed = True

        entries.append(entry)
    return entries
