"""ScribeService: the operations exposed to the API and CLI.

Every call takes the caller's practitioner id from the credential context
and refuses records owned by someone else.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scribe_os.audit import AuditEvent, AuditSink, record_safely
from scribe_os.config import Settings
from scribe_os.core.errors import AccessDeniedError, InvalidStateError, NotFoundError
from scribe_os.core.repository import (
    AuditRepository,
    DocumentRepository,
    ExportRepository,
    PatientRepository,
)
from scribe_os.crypto.cipher import FieldCipher
from scribe_os.export.engine import ExportEngine
from scribe_os.export.storage import ArtifactStore
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
from scribe_os.models.session import CipherField, SessionRecord, SessionStatus, SessionView
from scribe_os.pipeline.orchestrator import PipelineResult, SessionPipeline
from scribe_os.sessions.audio import AudioStore, wav_duration
from scribe_os.sessions.store import SessionStore

logger = logging.getLogger(__name__)

EXPORTABLE = (SessionStatus.COMPLETED, SessionStatus.ARCHIVED)
EXPORT_HISTORY_LIMIT = 20
RECENT_ACTIVITY_LIMIT = 5


class ScribeService:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        store: SessionStore,
        pipeline: SessionPipeline,
        engine: ExportEngine,
        cipher: FieldCipher,
        audio_store: AudioStore,
        artifact_store: ArtifactStore,
        audit_sink: Optional[AuditSink] = None,
    ):
        self._session_factory = session_factory
        self.store = store
        self.pipeline = pipeline
        self.engine = engine
        self.cipher = cipher
        self.audio_store = audio_store
        self.artifact_store = artifact_store
        self.audit_sink = audit_sink

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: FieldCipher,
        *,
        speech=None,
        llm=None,
        audit_sink: Optional[AuditSink] = None,
        notifier=None,
        observability=None,
    ) -> "ScribeService":
        """Wire every component from settings. Backends can be injected."""
        from scribe_os.llm.factory import create_llm_from_settings
        from scribe_os.scribe.adapter import ScribeAdapter
        from scribe_os.speech.whisper import create_speech_from_settings

        speech = speech or create_speech_from_settings(settings)
        llm = llm or create_llm_from_settings(settings)
        store = SessionStore(session_factory, audit_sink=audit_sink)
        audio_store = AudioStore(settings.audio_storage_dir, cipher)
        adapter = ScribeAdapter.from_settings(speech, llm, settings, observability=observability)
        pipeline = SessionPipeline(
            store,
            adapter,
            cipher,
            audio_store,
            notifier=notifier,
            observability=observability,
            max_attempts=settings.pipeline_max_attempts,
            retry_wait_max=settings.pipeline_retry_wait_max,
        )
        return cls(
            session_factory=session_factory,
            store=store,
            pipeline=pipeline,
            engine=ExportEngine.from_settings(cipher, settings, observability=observability),
            cipher=cipher,
            audio_store=audio_store,
            artifact_store=ArtifactStore(settings.export_storage_dir, cipher),
            audit_sink=audit_sink,
        )

    async def _audit(self, resource_id: str, action: str, user_id: str, resource_type: str, **detail) -> None:
        await record_safely(
            self.audit_sink,
            AuditEvent(
                session_id=resource_id,
                action=action,
                user_id=user_id,
                resource_type=resource_type,
                detail=detail,
            ),
        )

    # Sessions

    async def create_session(
        self,
        owner_id: str,
        title: str,
        *,
        patient_id: Optional[str] = None,
        specialty: Optional[MedicalSpecialty] = None,
    ) -> SessionRecord:
        if patient_id is not None:
            async with self._session_factory() as db:
                patient = await PatientRepository(db).get_by_id(patient_id)
            if patient is None or patient.owner_id != owner_id:
                raise NotFoundError("Patient", patient_id)
        return await self.store.create(
            owner_id,
            title,
            patient_id=patient_id,
            specialty=specialty.value if specialty else None,
        )

    async def submit_audio(
        self,
        session_id: str,
        owner_id: str,
        audio: bytes,
        *,
        filename: str = "audio.webm",
        duration_seconds: Optional[float] = None,
        wait: bool = False,
    ) -> SessionRecord | PipelineResult:
        """Store the audio, attach it and start the pipeline.

        With ``wait=False`` (the API default) the pipeline runs in the
        background and the attached record is returned at once.
        """
        record = await self.store.get_owned(session_id, owner_id)
        if record.status not in (SessionStatus.DRAFT, SessionStatus.IN_PROGRESS):
            raise InvalidStateError(f"Session {session_id} cannot accept audio in {record.status.value}")
        if record.audio_ref is not None:
            raise InvalidStateError(f"Session {session_id}: audio already attached")
        if not audio:
            raise ValueError("Audio payload is empty")

        if duration_seconds is None:
            duration_seconds = wav_duration(audio)
        ref = await self.audio_store.save(session_id, audio, filename)
        record = await self.store.attach_audio(session_id, ref, duration_seconds)

        if wait:
            return await self.pipeline.run(session_id)
        self.pipeline.submit(session_id)
        return record

    async def resume(self, session_id: str, owner_id: str) -> PipelineResult:
        """Re-run the pipeline from the session's persisted status."""
        await self.store.get_owned(session_id, owner_id)
        return await self.pipeline.run(session_id)

    def _decrypt_view(self, record: SessionRecord) -> SessionView:
        notes = coding = None
        if record.notes_cipher:
            notes = StructuredNote.model_validate(self.cipher.decrypt_json(record.notes_cipher))
        if record.coding_cipher:
            coding = CodingSuggestion.model_validate(self.cipher.decrypt_json(record.coding_cipher))
        return SessionView(
            id=record.id,
            title=record.title,
            status=record.status,
            degraded=record.degraded,
            degraded_reason=record.degraded_reason,
            patient_id=record.patient_id,
            specialty=record.specialty,
            audio_ref=record.audio_ref,
            audio_duration_seconds=record.audio_duration_seconds,
            created_at=record.created_at,
            completed_at=record.completed_at,
            transcript=self.cipher.decrypt_text(record.transcript_cipher) if record.transcript_cipher else None,
            notes=notes,
            coding=coding,
        )

    async def get_session(self, session_id: str, owner_id: str) -> SessionView:
        """Decrypted view. A field that fails to decrypt aborts the read."""
        record = await self.store.get_owned(session_id, owner_id)
        view = self._decrypt_view(record)
        await self._audit(session_id, "session.read", owner_id, "clinical_session")
        return view

    async def list_sessions(self, owner_id: str, filters: Optional[SessionFilter] = None) -> list[SessionRecord]:
        return await self.store.list_for_owner(owner_id, filters)

    async def update_notes(
        self,
        session_id: str,
        owner_id: str,
        note: StructuredNote,
        coding: Optional[CodingSuggestion] = None,
    ) -> SessionView:
        """Clinician revision of a completed session's notes and coding."""
        record = await self.store.get_owned(session_id, owner_id)
        if record.status is not SessionStatus.COMPLETED:
            raise InvalidStateError(f"Session {session_id} notes can only be revised once COMPLETED")
        record = await self.store.set_encrypted_field(
            session_id, CipherField.NOTES, self.cipher.encrypt_json(note.model_dump()), user_id=owner_id
        )
        if coding is not None:
            record = await self.store.set_encrypted_field(
                session_id, CipherField.CODING, self.cipher.encrypt_json(coding.model_dump()), user_id=owner_id
            )
        return self._decrypt_view(record)

    async def archive(self, session_id: str, owner_id: str) -> SessionRecord:
        await self.store.get_owned(session_id, owner_id)
        return await self.store.archive(session_id, user_id=owner_id)

    async def reset_to_draft(self, session_id: str, owner_id: str) -> SessionRecord:
        await self.store.get_owned(session_id, owner_id)
        return await self.store.reset_to_draft(session_id, user_id=owner_id)

    async def session_stats(self, owner_id: str) -> dict:
        stats = await self.store.stats(owner_id)
        async with self._session_factory() as db:
            stats["exports"] = await ExportRepository(db).count_by_owner(owner_id)
            stats["documents"] = await DocumentRepository(db).count_by_owner(owner_id)
            recent = await AuditRepository(db).recent_for_user(owner_id, limit=RECENT_ACTIVITY_LIMIT)
            stats["recent_activity"] = [
                {
                    "id": entry.id,
                    "action": entry.action,
                    "resource_type": entry.resource_type,
                    "resource_id": entry.resource_id,
                    "timestamp": entry.timestamp,
                }
                for entry in recent
            ]
        return stats

    # Exports

    async def _patient_contexts(self, records: list[SessionRecord]) -> dict[str, PatientContext]:
        async with self._session_factory() as db:
            patients = await PatientRepository(db).get_many(r.patient_id for r in records)
        return {
            pid: PatientContext(id=p.id, first_name=p.first_name, last_name=p.last_name, gender=p.gender)
            for pid, p in patients.items()
        }

    async def request_export(
        self,
        practitioner: PractitionerInfo,
        filters: Optional[SessionFilter],
        fmt: ExportFormat | str,
        options: Optional[ExportOptions] = None,
    ) -> ExportArtifact:
        """Export the caller's finished sessions matching ``filters``.

        Only COMPLETED and ARCHIVED sessions are exported, newest first.
        Explicitly listed session ids owned by someone else raise
        ``AccessDeniedError``.
        """
        fmt = ExportFormat.parse(fmt)
        owner_id = practitioner.id
        filters = filters or SessionFilter()

        records = await self.store.list_for_owner(owner_id, filters)
        if filters.session_ids is not None:
            found = {r.id for r in records}
            missing = [sid for sid in filters.session_ids if sid not in found]
            if missing:
                raise AccessDeniedError(f"{len(missing)} requested session(s) not available to caller")
        records = [r for r in records if r.status in EXPORTABLE]

        patients = await self._patient_contexts(records)
        artifact = await asyncio.to_thread(
            self.engine.export,
            records,
            fmt,
            options,
            practitioner=practitioner,
            patients=patients,
        )

        storage_ref = await self.artifact_store.save(artifact)
        async with self._session_factory() as db:
            await ExportRepository(db).create(
                id=artifact.id,
                owner_id=owner_id,
                format=artifact.format.value,
                file_name=artifact.file_name,
                size_bytes=artifact.size_bytes,
                source_session_ids=list(artifact.source_session_ids),
                storage_ref=storage_ref,
                created_at=artifact.created_at,
            )
            await db.commit()

        await self._audit(
            artifact.id,
            "export.create",
            owner_id,
            "export",
            format=artifact.format.value,
            file_name=artifact.file_name,
            size_bytes=artifact.size_bytes,
            session_count=len(artifact.source_session_ids),
            placeholder_count=len(artifact.placeholder_session_ids),
        )
        return artifact

    async def list_exports(self, owner_id: str) -> list[ExportSummary]:
        async with self._session_factory() as db:
            rows = await ExportRepository(db).list_by_owner(owner_id, limit=EXPORT_HISTORY_LIMIT)
            return [ExportSummary.model_validate(r) for r in rows]

    async def get_export(self, export_id: str, owner_id: str) -> tuple[ExportSummary, bytes]:
        async with self._session_factory() as db:
            row = await ExportRepository(db).get_by_id(export_id)
            if row is None:
                raise NotFoundError("Export", export_id)
            if row.owner_id != owner_id:
                raise AccessDeniedError(f"Export {export_id} is not owned by caller")
            summary = ExportSummary.model_validate(row)
            storage_ref = row.storage_ref
        if storage_ref is None:
            raise NotFoundError("Export payload", export_id)
        content = await self.artifact_store.load(storage_ref)
        await self._audit(export_id, "export.download", owner_id, "export")
        return summary, content

    # Documents

    async def generate_document(
        self,
        session_id: str,
        owner_id: str,
        kind: DocumentKind,
        *,
        specialty: Optional[MedicalSpecialty] = None,
    ) -> str:
        """Draft a document from the session's notes. Persist it with ``save_document``."""
        record = await self.store.get_owned(session_id, owner_id)
        if not record.notes_cipher:
            raise InvalidStateError(f"Session {session_id} has no structured notes")
        note = StructuredNote.model_validate(self.cipher.decrypt_json(record.notes_cipher))

        patient = None
        if record.patient_id:
            patient = (await self._patient_contexts([record])).get(record.patient_id)
        if specialty is None and record.specialty:
            specialty = MedicalSpecialty(record.specialty)

        text = await self.pipeline.adapter.draft_document(kind, note, patient, specialty)
        await self._audit(session_id, "document.generate", owner_id, "clinical_session", kind=kind.value)
        return text

    async def save_document(
        self,
        owner_id: str,
        kind: DocumentKind,
        title: str,
        content: str,
        *,
        session_id: Optional[str] = None,
        template: Optional[str] = None,
    ) -> DocumentSummary:
        """Store a document with its content encrypted.

        A linked session must belong to the caller.
        """
        if not title.strip() or not content.strip():
            raise ValueError("Document title and content are required")
        if session_id is not None:
            await self.store.get_owned(session_id, owner_id)

        async with self._session_factory() as db:
            row = await DocumentRepository(db).create(
                owner_id=owner_id,
                session_id=session_id,
                kind=DocumentKind(kind).value,
                title=title,
                content_cipher=self.cipher.encrypt_text(content),
                template=template,
            )
            await db.commit()
            summary = DocumentSummary.model_validate(row)

        await self._audit(
            summary.id, "document.create", owner_id, "document", kind=summary.kind.value, session_id=session_id
        )
        logger.info("Document %s saved for %s", summary.id, owner_id)
        return summary

    async def list_documents(
        self,
        owner_id: str,
        *,
        kind: Optional[DocumentKind] = None,
        session_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> DocumentPage:
        page = max(1, page)
        async with self._session_factory() as db:
            rows, total = await DocumentRepository(db).list_by_owner(
                owner_id,
                kind=kind.value if kind else None,
                session_id=session_id,
                offset=(page - 1) * limit,
                limit=limit,
            )
            items = [DocumentSummary.model_validate(r) for r in rows]
        return DocumentPage(items=items, total=total, page=page, limit=limit)

    async def get_document(self, document_id: str, owner_id: str) -> DocumentView:
        """Decrypted document. A failed decrypt aborts the read."""
        async with self._session_factory() as db:
            row = await DocumentRepository(db).get_by_id(document_id)
            if row is None:
                raise NotFoundError("Document", document_id)
            if row.owner_id != owner_id:
                raise AccessDeniedError(f"Document {document_id} is not owned by caller")
            summary = DocumentSummary.model_validate(row)
            content_cipher = row.content_cipher

        view = DocumentView(**summary.model_dump(), content=self.cipher.decrypt_text(content_cipher))
        await self._audit(document_id, "document.read", owner_id, "document")
        return view


def create_service_from_settings() -> ScribeService:
    """Wire the production service: DB and JSONL audit, logging notifier."""
    from scribe_os.audit import CompositeAuditSink, DatabaseAuditSink, JsonlAuditSink
    from scribe_os.config import get_settings
    from scribe_os.core.database import get_session_factory
    from scribe_os.crypto.cipher import create_cipher_from_settings
    from scribe_os.notifications import LoggingDispatcher
    from scribe_os.observability import get_observability_logger

    settings = get_settings()
    session_factory = get_session_factory()
    audit_sink = CompositeAuditSink(
        JsonlAuditSink(settings.audit_log_path),
        DatabaseAuditSink(session_factory),
    )
    return ScribeService.build(
        settings,
        session_factory,
        create_cipher_from_settings(),
        audit_sink=audit_sink,
        notifier=LoggingDispatcher(),
        observability=get_observability_logger(),
    )
