"""Session pipeline orchestrator.

Drives one session from attached audio to a terminal status:

    IN_PROGRESS -> TRANSCRIBING -> PROCESSING -> COMPLETED

The transcript is encrypted and committed together with the move to
PROCESSING. From that point on the run cannot fail: a structuring or
coding failure completes the session in degraded form, keeping the
transcript. A transcription failure raises ``TranscriptionError`` and
leaves the session in TRANSCRIBING with nothing saved.

``run`` is also the resume entry point. It looks at the persisted status
and continues from there, so a run abandoned after the transcript commit
goes straight to structuring without calling speech-to-text again.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scribe_os.core.errors import (
    CodingError,
    ExternalServiceError,
    InvalidStateError,
    StructuringError,
    TranscriptionError,
)
from scribe_os.crypto.cipher import FieldCipher
from scribe_os.models.clinical import CodingSuggestion, MedicalSpecialty, StructuredNote
from scribe_os.models.session import CipherField, SessionRecord, SessionStatus
from scribe_os.notifications import Notification, NotificationDispatcher, request_notification
from scribe_os.observability import ObservabilityLogger
from scribe_os.scribe.adapter import ScribeAdapter
from scribe_os.sessions.audio import AudioStore
from scribe_os.sessions.store import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    DEGRADED = "DEGRADED"


@dataclass
class PipelineResult:
    session: SessionRecord
    outcome: PipelineOutcome
    degraded_reason: Optional[str] = None
    transcription_ran: bool = False

    @property
    def degraded(self) -> bool:
        return self.outcome is PipelineOutcome.DEGRADED


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ExternalServiceError) and exc.retryable


class SessionPipeline:
    def __init__(
        self,
        store: SessionStore,
        adapter: ScribeAdapter,
        cipher: FieldCipher,
        audio_store: AudioStore,
        *,
        notifier: Optional[NotificationDispatcher] = None,
        observability: Optional[ObservabilityLogger] = None,
        max_attempts: int = 3,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 10.0,
    ):
        self.store = store
        self.adapter = adapter
        self.cipher = cipher
        self.audio_store = audio_store
        self.notifier = notifier
        self.obs = observability
        self.max_attempts = max(1, max_attempts)
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self._tasks: set[asyncio.Task] = set()
        self._run_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _run_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._run_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._run_locks[session_id] = lock
        return lock

    async def _with_retry(self, call: Callable[[], Awaitable[T]], session_id: str, stage: str) -> T:
        """Retry ``call`` while it raises a retryable external error."""
        attempt = 0
        result = None
        async for attempt_ctx in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_min, max=self.retry_wait_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt_ctx:
                attempt += 1
                if attempt > 1:
                    logger.info("Session %s: %s attempt %d", session_id, stage, attempt)
                result = await call()
        return result

    def _log_stage(self, session_id: str, stage: str, outcome: str, started: float, **kwargs) -> None:
        if self.obs is not None:
            self.obs.log_pipeline_stage(
                session_id,
                stage,
                outcome,
                duration_ms=(time.time() - started) * 1000,
                **kwargs,
            )

    async def run(
        self,
        session_id: str,
        *,
        specialty: Optional[MedicalSpecialty] = None,
        notify_recipient: Optional[str] = None,
    ) -> PipelineResult:
        """Run or resume the pipeline for one session.

        Returns a COMPLETED or DEGRADED result. Runs on the same session id
        are serialized; a run that waited for another one to finish the
        session returns that outcome instead of starting over.

        Raises:
            TranscriptionError: nothing was saved; the session stays in
                TRANSCRIBING and can be resumed
            InvalidStateError: no audio attached, or session already terminal
            CipherError: encryption or decryption failed; nothing committed
        """
        lock = self._run_lock(session_id)
        waited = lock.locked()
        async with lock:
            record = await self.store.get(session_id)
            if waited and record.status is SessionStatus.COMPLETED:
                logger.info("Session %s: already completed by a concurrent run", session_id)
                outcome = PipelineOutcome.DEGRADED if record.degraded else PipelineOutcome.COMPLETED
                return PipelineResult(record, outcome, record.degraded_reason)
            return await self._run_locked(record, specialty, notify_recipient)

    async def _run_locked(
        self,
        record: SessionRecord,
        specialty: Optional[MedicalSpecialty],
        notify_recipient: Optional[str],
    ) -> PipelineResult:
        session_id = record.id
        if record.status.is_terminal:
            raise InvalidStateError(f"Session {session_id} is already {record.status.value}")
        if record.status in (SessionStatus.DRAFT, SessionStatus.IN_PROGRESS) and record.audio_ref is None:
            raise InvalidStateError(f"Session {session_id} has no audio attached")

        if specialty is None and record.specialty:
            specialty = MedicalSpecialty(record.specialty)

        if record.status is SessionStatus.DRAFT:
            record = await self.store.transition(session_id, SessionStatus.IN_PROGRESS)
        if record.status is SessionStatus.IN_PROGRESS:
            record = await self.store.transition(session_id, SessionStatus.TRANSCRIBING)

        transcription_ran = False
        if record.status is SessionStatus.TRANSCRIBING:
            record, transcript = await self._transcribe(record)
            transcription_ran = True
        else:
            transcript = self.cipher.decrypt_text(record.transcript_cipher) if record.transcript_cipher else None
            if transcript is None:
                raise InvalidStateError(f"Session {session_id} is PROCESSING without a transcript")
            logger.info("Session %s: resuming at structuring", session_id)

        result = await self._structure(record, transcript, specialty, notify_recipient)
        result.transcription_ran = transcription_ran
        return result

    async def _transcribe(self, record: SessionRecord) -> tuple[SessionRecord, str]:
        session_id = record.id
        started = time.time()
        if record.audio_ref is None:
            raise InvalidStateError(f"Session {session_id} has no audio attached")
        audio = await self.audio_store.load(record.audio_ref)
        filename = self.audio_store.filename_for(record.audio_ref)

        try:
            result = await self._with_retry(
                lambda: self.adapter.transcribe(audio, filename, session_id=session_id),
                session_id,
                "transcription",
            )
        except TranscriptionError as e:
            logger.error(
                "Session %s: transcription failed (%s, retryable=%s)", session_id, e.reason, e.retryable
            )
            self._log_stage(
                session_id, "transcription", "failed", started,
                status=SessionStatus.TRANSCRIBING.value, error_type=type(e).__name__,
            )
            raise

        transcript_cipher = self.cipher.encrypt_text(result.text)
        record = await self.store.transition(
            session_id,
            SessionStatus.PROCESSING,
            fields={CipherField.TRANSCRIPT: transcript_cipher},
        )
        if result.duration_seconds and record.audio_duration_seconds is None:
            await self.store.set_audio_duration(session_id, result.duration_seconds)

        logger.info("Session %s: transcript committed (%d chars)", session_id, len(result.text))
        self._log_stage(session_id, "transcription", "committed", started, status=SessionStatus.PROCESSING.value)
        return record, result.text

    async def _structure(
        self,
        record: SessionRecord,
        transcript: str,
        specialty: Optional[MedicalSpecialty],
        notify_recipient: Optional[str],
    ) -> PipelineResult:
        session_id = record.id
        started = time.time()
        note: Optional[StructuredNote] = None
        coding: Optional[CodingSuggestion] = None
        failures: list[ExternalServiceError] = []

        try:
            note = await self._with_retry(
                lambda: self.adapter.structure_notes(transcript, specialty, session_id=session_id),
                session_id,
                "structuring",
            )
        except StructuringError as e:
            failures.append(e)

        if note is not None:
            try:
                coding = await self._with_retry(
                    lambda: self.adapter.suggest_coding(note, specialty, session_id=session_id),
                    session_id,
                    "coding",
                )
            except CodingError as e:
                failures.append(e)

        fields: dict[CipherField, str] = {}
        if note is not None:
            fields[CipherField.NOTES] = self.cipher.encrypt_json(note.model_dump())
        if coding is not None:
            fields[CipherField.CODING] = self.cipher.encrypt_json(coding.model_dump())

        degraded_reason = None
        if failures:
            degraded_reason = "; ".join(f"{e.operation}: {e.reason}" for e in failures)

        record = await self.store.transition(
            session_id,
            SessionStatus.COMPLETED,
            fields=fields,
            degraded_reason=degraded_reason,
        )

        if degraded_reason:
            logger.warning("Session %s completed degraded: %s", session_id, degraded_reason)
            self._log_stage(
                session_id, "structuring", "degraded", started,
                status=record.status.value, degraded=True,
                error_type=type(failures[0]).__name__,
            )
            await request_notification(
                self.notifier,
                Notification(
                    recipient=notify_recipient or record.owner_id,
                    subject=f"Session {session_id} needs manual notes",
                    body=(
                        "The transcript was saved, but automatic note structuring did not "
                        f"complete for session {session_id}. Please review it and write the notes."
                    ),
                ),
            )
            return PipelineResult(record, PipelineOutcome.DEGRADED, degraded_reason)

        logger.info("Session %s completed", session_id)
        self._log_stage(session_id, "structuring", "completed", started, status=record.status.value)
        return PipelineResult(record, PipelineOutcome.COMPLETED)

    # Background execution

    def submit(self, session_id: str, **kwargs) -> asyncio.Task:
        """Schedule ``run`` without waiting. Failures are logged, not raised."""
        task = asyncio.create_task(self._run_logged(session_id, **kwargs), name=f"pipeline-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_logged(self, session_id: str, **kwargs) -> Optional[PipelineResult]:
        try:
            return await self.run(session_id, **kwargs)
        except TranscriptionError as e:
            logger.error("Session %s: pipeline stopped, nothing saved (%s)", session_id, e.reason)
        except Exception:
            logger.exception("Session %s: pipeline crashed", session_id)
        return None

    async def drain(self) -> None:
        """Wait for every scheduled run. Used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
