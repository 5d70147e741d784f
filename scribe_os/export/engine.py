"""Export engine: one artifact per request, in the requested format."""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence

from scribe_os.crypto.cipher import FieldCipher
from scribe_os.export.common import project_sessions
from scribe_os.export.fhir_bundle import generate_bundle
from scribe_os.export.pdf_generator import generate_report_pdf
from scribe_os.export.table import generate_table
from scribe_os.models.clinical import PatientContext
from scribe_os.models.export import (
    ExportArtifact,
    ExportFormat,
    ExportOptions,
    PractitionerInfo,
)
from scribe_os.models.session import SessionRecord
from scribe_os.observability import ObservabilityLogger

logger = logging.getLogger(__name__)


class ExportEngine:
    """Stateless apart from configuration; safe to share across requests."""

    def __init__(
        self,
        cipher: FieldCipher,
        *,
        clinic_name: str = "ScribeOS",
        page_break_y: float = 250.0,
        transcript_cap: int = 500,
        identifier_system: str = "https://scribe-os.example/exports",
        observability: Optional[ObservabilityLogger] = None,
    ):
        self.cipher = cipher
        self.clinic_name = clinic_name
        self.page_break_y = page_break_y
        self.transcript_cap = transcript_cap
        self.identifier_system = identifier_system
        self.obs = observability

    @classmethod
    def from_settings(cls, cipher: FieldCipher, settings, observability=None) -> "ExportEngine":
        return cls(
            cipher,
            clinic_name=settings.clinic_name,
            page_break_y=settings.report_page_break_y,
            transcript_cap=settings.report_transcript_cap,
            identifier_system=settings.fhir_identifier_system,
            observability=observability,
        )

    def export(
        self,
        records: Sequence[SessionRecord],
        fmt: ExportFormat | str,
        options: Optional[ExportOptions] = None,
        *,
        practitioner: PractitionerInfo,
        patients: Optional[dict[str, PatientContext]] = None,
    ) -> ExportArtifact:
        """Serialize ``records`` (in order) into one artifact.

        Raises:
            ExportFormatError: ``fmt`` is not a supported format
        """
        started = time.time()
        fmt = ExportFormat.parse(fmt)
        options = options or ExportOptions()

        entries = project_sessions(records, self.cipher, options, patients)
        artifact = ExportArtifact(
            format=fmt,
            source_session_ids=tuple(e.session_id for e in entries),
            content=b"",
        )

        if fmt is ExportFormat.REPORT:
            content = generate_report_pdf(
                entries,
                options,
                practitioner=practitioner,
                clinic_name=self.clinic_name,
                page_break_y=self.page_break_y,
                transcript_cap=self.transcript_cap,
                generated_at=artifact.created_at,
            )
        elif fmt is ExportFormat.TABLE:
            content = generate_table(entries, options)
        else:
            content = generate_bundle(
                entries,
                options,
                practitioner,
                bundle_id=artifact.id,
                identifier_system=self.identifier_system,
                timestamp=artifact.created_at,
            )

        placeholders = tuple(e.session_id for e in entries if e.has_placeholder)
        # Plaintext lives only in ``entries``; drop it before returning.
        del entries

        artifact = artifact.model_copy(
            update={"content": content, "placeholder_session_ids": placeholders}
        )
        logger.info(
            "Export %s: %s, %d session(s), %d placeholder(s), %d bytes",
            artifact.id,
            fmt.value,
            len(artifact.source_session_ids),
            len(placeholders),
            artifact.size_bytes,
        )
        if self.obs is not None:
            self.obs.log_export(
                owner_id=practitioner.id,
                format=fmt.value,
                session_count=len(artifact.source_session_ids),
                placeholder_count=len(placeholders),
                size_bytes=artifact.size_bytes,
                duration_ms=(time.time() - started) * 1000,
            )
        return artifact
