"""Session record store.

Owns the session lifecycle: creation, write-once audio attachment, the
status state machine and the per-status rules for which encrypted fields
may be written. Plaintext never reaches this layer.

Transitions on one session id are serialized twice over: an in-process
``asyncio.Lock`` per id, and a status compare-and-set in SQL so a second
worker process racing on the same row loses cleanly.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scribe_os.audit import AuditEvent, AuditSink, record_safely
from scribe_os.core.errors import (
    AccessDeniedError,
    IllegalTransitionError,
    InvalidStateError,
    NotFoundError,
)
from scribe_os.core.repository import SessionRepository
from scribe_os.models.export import SessionFilter
from scribe_os.models.session import (
    AUDIO_ATTACHABLE,
    CipherField,
    SessionRecord,
    SessionStatus,
    field_writable,
    is_legal_transition,
)

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_sink: Optional[AuditSink] = None,
    ):
        self._session_factory = session_factory
        self._audit_sink = audit_sink
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock. Distinct ids never contend."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def _audit(self, session_id: str, action: str, user_id: Optional[str] = None, **detail) -> None:
        await record_safely(
            self._audit_sink,
            AuditEvent(session_id=session_id, action=action, user_id=user_id, detail=detail),
        )

    async def _load(self, repo: SessionRepository, session_id: str) -> SessionRecord:
        row = await repo.get_by_id(session_id)
        if row is None:
            raise NotFoundError("Session", session_id)
        return SessionRecord.model_validate(row)

    # Reads

    async def ping(self) -> None:
        async with self._session_factory() as db:
            await db.execute(text("SELECT 1"))

    async def get(self, session_id: str) -> SessionRecord:
        async with self._session_factory() as db:
            return await self._load(SessionRepository(db), session_id)

    async def get_owned(self, session_id: str, owner_id: str) -> SessionRecord:
        record = await self.get(session_id)
        if record.owner_id != owner_id:
            raise AccessDeniedError(f"Session {session_id} is not owned by caller")
        return record

    async def list_for_owner(self, owner_id: str, filters: Optional[SessionFilter] = None) -> list[SessionRecord]:
        async with self._session_factory() as db:
            rows = await SessionRepository(db).list_by_owner(owner_id, filters)
            return [SessionRecord.model_validate(r) for r in rows]

    async def stats(self, owner_id: str) -> dict:
        async with self._session_factory() as db:
            repo = SessionRepository(db)
            by_status = await repo.count_by_status(owner_id)
            degraded = await repo.degraded_count(owner_id)
            avg_duration = await repo.average_duration(owner_id)
        return {
            "total": sum(by_status.values()),
            "by_status": {s.value: by_status.get(s.value, 0) for s in SessionStatus},
            "degraded": degraded,
            "average_duration_seconds": round(avg_duration, 1) if avg_duration is not None else None,
        }

    # Mutations

    async def create(
        self,
        owner_id: str,
        title: str,
        *,
        patient_id: Optional[str] = None,
        specialty: Optional[str] = None,
    ) -> SessionRecord:
        async with self._session_factory() as db:
            row = await SessionRepository(db).create(
                owner_id=owner_id,
                title=title,
                patient_id=patient_id,
                specialty=specialty,
                status=SessionStatus.DRAFT.value,
            )
            await db.commit()
            record = SessionRecord.model_validate(row)

        logger.info("Session %s created", record.id)
        await self._audit(record.id, "session.create", user_id=owner_id)
        return record

    async def attach_audio(
        self,
        session_id: str,
        audio_ref: str,
        duration_seconds: Optional[float] = None,
    ) -> SessionRecord:
        """Attach the audio reference once and move DRAFT to IN_PROGRESS.

        Raises:
            NotFoundError: unknown session
            InvalidStateError: status is not DRAFT/IN_PROGRESS, or audio is
                already attached
        """
        async with self.lock(session_id):
            async with self._session_factory() as db:
                repo = SessionRepository(db)
                current = await self._load(repo, session_id)
                if current.status not in AUDIO_ATTACHABLE:
                    raise InvalidStateError(
                        f"Session {session_id}: cannot attach audio in status {current.status.value}"
                    )
                if current.audio_ref is not None:
                    raise InvalidStateError(f"Session {session_id}: audio already attached")

                next_status = SessionStatus.IN_PROGRESS
                ok = await repo.compare_and_set_status(
                    session_id,
                    current.status.value,
                    next_status.value,
                    audio_ref=audio_ref,
                    audio_duration_seconds=duration_seconds,
                )
                if not ok:
                    await db.rollback()
                    raise InvalidStateError(f"Session {session_id}: status changed concurrently")
                await db.commit()
                record = await self._load(repo, session_id)

        await self._audit(session_id, "session.audio_attached", from_status=current.status.value)
        return record

    async def transition(
        self,
        session_id: str,
        next_status: SessionStatus,
        *,
        fields: Optional[dict[CipherField, str]] = None,
        degraded_reason: Optional[str] = None,
    ) -> SessionRecord:
        """Advance the session along one legal edge.

        ``fields`` are ciphertexts written in the same statement as the
        status change; each must be writable in ``next_status``. A
        ``degraded_reason`` is only accepted on PROCESSING -> COMPLETED and
        marks the completion as partial.

        Raises:
            NotFoundError: unknown session
            IllegalTransitionError: edge not in the state machine; nothing
                is written
            InvalidStateError: a field is not writable in ``next_status``
        """
        next_status = SessionStatus(next_status)
        fields = fields or {}

        async with self.lock(session_id):
            async with self._session_factory() as db:
                repo = SessionRepository(db)
                current = await self._load(repo, session_id)
                if not is_legal_transition(current.status, next_status):
                    raise IllegalTransitionError(session_id, current.status.value, next_status.value)

                for field in fields:
                    if not field_writable(field, next_status):
                        raise InvalidStateError(
                            f"Session {session_id}: {field.value} not writable in {next_status.value}"
                        )
                if degraded_reason is not None and next_status is not SessionStatus.COMPLETED:
                    raise InvalidStateError("Only completion can be marked degraded")

                values: dict = {f.column: ciphertext for f, ciphertext in fields.items()}
                if next_status.is_terminal:
                    values["completed_at"] = datetime.now(timezone.utc)
                if degraded_reason is not None:
                    values["degraded"] = True
                    values["degraded_reason"] = degraded_reason

                ok = await repo.compare_and_set_status(
                    session_id, current.status.value, next_status.value, **values
                )
                if not ok:
                    await db.rollback()
                    latest = await self._load(repo, session_id)
                    raise IllegalTransitionError(session_id, latest.status.value, next_status.value)
                await db.commit()
                record = await self._load(repo, session_id)

        logger.info(
            "Session %s: %s -> %s%s",
            session_id,
            current.status.value,
            next_status.value,
            " (degraded)" if degraded_reason else "",
        )
        await self._audit(
            session_id,
            "session.transition",
            from_status=current.status.value,
            to_status=next_status.value,
            fields=sorted(f.value for f in fields),
            degraded=degraded_reason is not None,
        )
        return record

    async def set_encrypted_field(
        self,
        session_id: str,
        field: CipherField,
        ciphertext: str,
        *,
        user_id: Optional[str] = None,
    ) -> SessionRecord:
        """Write one ciphertext if the current status permits that field."""
        if not isinstance(ciphertext, str) or not ciphertext:
            raise ValueError("ciphertext must be a non-empty string")

        async with self.lock(session_id):
            async with self._session_factory() as db:
                repo = SessionRepository(db)
                current = await self._load(repo, session_id)
                if not field_writable(field, current.status):
                    raise InvalidStateError(
                        f"Session {session_id}: {field.value} not writable in {current.status.value}"
                    )
                ok = await repo.update_fields(
                    session_id,
                    expected_status=current.status.value,
                    **{field.column: ciphertext},
                )
                if not ok:
                    await db.rollback()
                    raise InvalidStateError(f"Session {session_id}: status changed concurrently")
                await db.commit()
                record = await self._load(repo, session_id)

        await self._audit(session_id, "session.field_written", user_id=user_id, field=field.value)
        return record

    async def archive(self, session_id: str, *, user_id: Optional[str] = None) -> SessionRecord:
        """Move any non-archived session to ARCHIVED."""
        async with self.lock(session_id):
            async with self._session_factory() as db:
                repo = SessionRepository(db)
                current = await self._load(repo, session_id)
                if current.status is SessionStatus.ARCHIVED:
                    raise InvalidStateError(f"Session {session_id} is already archived")
                values = {}
                if current.completed_at is None:
                    values["completed_at"] = datetime.now(timezone.utc)
                ok = await repo.compare_and_set_status(
                    session_id, current.status.value, SessionStatus.ARCHIVED.value, **values
                )
                if not ok:
                    await db.rollback()
                    raise InvalidStateError(f"Session {session_id}: status changed concurrently")
                await db.commit()
                record = await self._load(repo, session_id)

        await self._audit(session_id, "session.archive", user_id=user_id, from_status=current.status.value)
        return record

    async def reset_to_draft(self, session_id: str, *, user_id: Optional[str] = None) -> SessionRecord:
        """Explicit backward move to DRAFT.

        Clears every cipher field, the degraded flag and ``completed_at``.
        The audio reference stays so the pipeline can be resumed.
        """
        async with self.lock(session_id):
            async with self._session_factory() as db:
                repo = SessionRepository(db)
                current = await self._load(repo, session_id)
                if current.status is SessionStatus.DRAFT:
                    return current
                ok = await repo.compare_and_set_status(
                    session_id,
                    current.status.value,
                    SessionStatus.DRAFT.value,
                    transcript_cipher=None,
                    notes_cipher=None,
                    coding_cipher=None,
                    degraded=False,
                    degraded_reason=None,
                    completed_at=None,
                )
                if not ok:
                    await db.rollback()
                    raise InvalidStateError(f"Session {session_id}: status changed concurrently")
                await db.commit()
                record = await self._load(repo, session_id)

        logger.warning("Session %s reset to DRAFT from %s", session_id, current.status.value)
        await self._audit(session_id, "session.reset", user_id=user_id, from_status=current.status.value)
        return record

    async def set_audio_duration(self, session_id: str, seconds: float) -> None:
        """Fill in the audio duration when the upload did not provide one."""
        async with self._session_factory() as db:
            repo = SessionRepository(db)
            current = await self._load(repo, session_id)
            if current.audio_duration_seconds is not None:
                return
            await repo.update_fields(session_id, audio_duration_seconds=float(seconds))
            await db.commit()
