"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import json
import wave
from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scribe_os.audit import AuditEvent, AuditSink
from scribe_os.core.database import init_db
from scribe_os.crypto.cipher import FieldCipher, generate_key
from scribe_os.export.engine import ExportEngine
from scribe_os.export.storage import ArtifactStore
from scribe_os.llm.base import BaseLLM, LLMResponse, Message
from scribe_os.models.clinical import StructuredNote
from scribe_os.models.session import CipherField, SessionRecord, SessionStatus
from scribe_os.notifications import Notification
from scribe_os.observability import ObservabilityLogger
from scribe_os.pipeline.orchestrator import SessionPipeline
from scribe_os.scribe.adapter import ScribeAdapter
from scribe_os.service import ScribeService
from scribe_os.sessions.audio import AudioStore
from scribe_os.sessions.store import SessionStore
from scribe_os.speech.base import BaseSpeechToText, TranscriptResult

OWNER = "prac-0001"
OTHER_OWNER = "prac-0002"

TRANSCRIPT = "Patient reports a sore throat for three days.\nNo fever. Advised rest."

SOAP_REPLY = {
    "subjective": "Sore throat for three days",
    "objective": "Throat erythema, no fever",
    "assessment": "Viral pharyngitis",
    "plan": "Rest, fluids, review in one week",
}

CODING_REPLY = {
    "ngap": "C",
    "ccam": "",
    "icd10": "J02.9",
    "dsm5": "",
    "explanation": "Acute pharyngitis, unspecified",
}


# ---------------------------------------------------------------------------
# Scripted backends
# ---------------------------------------------------------------------------

class FakeSpeech(BaseSpeechToText):
    """Returns scripted results in order; an exception item is raised."""

    def __init__(self, script: Optional[list[Any]] = None):
        self.script = list(script or [])
        self.calls: list[tuple[int, str]] = []

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> TranscriptResult:
        self.calls.append((len(audio), filename))
        item = self.script.pop(0) if self.script else TranscriptResult(TRANSCRIPT, "fr", 95.0)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def model_name(self) -> str:
        return "fake-whisper"

    @property
    def provider(self) -> str:
        return "fake"


class FakeLLM(BaseLLM):
    """Chat backend replaying ``script``; dicts are sent back as JSON text."""

    def __init__(self, script: Optional[list[Any]] = None):
        self.script = list(script or [])
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "temperature": temperature, "json_mode": json_mode})
        item = self.script.pop(0) if self.script else "{}"
        if isinstance(item, BaseException):
            raise item
        content = json.dumps(item) if isinstance(item, dict) else item
        return LLMResponse(content=content, model="fake-chat")

    async def health_check(self) -> bool:
        return True

    @property
    def model_name(self) -> str:
        return "fake-chat"

    @property
    def provider(self) -> str:
        return "fake"


class MemoryAuditSink(AuditSink):
    """Keeps audit events in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self, session_id: Optional[str] = None) -> list[str]:
        return [e.action for e in self.events if session_id is None or e.session_id == session_id]


class RecordingDispatcher:
    def __init__(self):
        self.sent: list[Notification] = []

    async def dispatch(self, notification: Notification) -> None:
        self.sent.append(notification)


def make_wav(seconds: float = 1.0, rate: int = 8000) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def cipher() -> FieldCipher:
    return FieldCipher(generate_key())


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def notifier() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def obs(tmp_path) -> ObservabilityLogger:
    return ObservabilityLogger(log_dir=tmp_path / "logs")


@pytest.fixture
def store(session_factory, audit_sink) -> SessionStore:
    return SessionStore(session_factory, audit_sink=audit_sink)


@pytest.fixture
def audio_store(tmp_path, cipher) -> AudioStore:
    return AudioStore(tmp_path / "audio", cipher)


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM([SOAP_REPLY, CODING_REPLY])


@pytest.fixture
def adapter(speech, llm, obs) -> ScribeAdapter:
    return ScribeAdapter(speech, llm, observability=obs, transcription_timeout=5, structuring_timeout=5)


@pytest.fixture
def pipeline(store, adapter, cipher, audio_store, notifier, obs) -> SessionPipeline:
    return SessionPipeline(
        store,
        adapter,
        cipher,
        audio_store,
        notifier=notifier,
        observability=obs,
        max_attempts=3,
        retry_wait_min=0,
        retry_wait_max=0,
    )


@pytest.fixture
def export_engine(cipher, obs) -> ExportEngine:
    return ExportEngine(cipher, clinic_name="Test Clinic", observability=obs)


@pytest.fixture
def service(session_factory, store, pipeline, export_engine, cipher, audio_store, tmp_path, audit_sink):
    return ScribeService(
        session_factory=session_factory,
        store=store,
        pipeline=pipeline,
        engine=export_engine,
        cipher=cipher,
        audio_store=audio_store,
        artifact_store=ArtifactStore(tmp_path / "exports", cipher),
        audit_sink=audit_sink,
    )


# ---------------------------------------------------------------------------
# Session builders
# ---------------------------------------------------------------------------

async def advance_to_processing(
    store: SessionStore,
    cipher: FieldCipher,
    owner_id: str = OWNER,
    title: str = "Consultation",
    transcript: str = TRANSCRIPT,
    **create_kwargs,
) -> SessionRecord:
    record = await store.create(owner_id, title, **create_kwargs)
    await store.attach_audio(record.id, f"{record.id}/audio.webm.enc", 125.0)
    await store.transition(record.id, SessionStatus.TRANSCRIBING)
    return await store.transition(
        record.id,
        SessionStatus.PROCESSING,
        fields={CipherField.TRANSCRIPT: cipher.encrypt_text(transcript)},
    )


async def make_completed(
    store: SessionStore,
    cipher: FieldCipher,
    owner_id: str = OWNER,
    title: str = "Consultation",
    transcript: str = TRANSCRIPT,
    note: Optional[dict] = None,
    **create_kwargs,
) -> SessionRecord:
    record = await advance_to_processing(store, cipher, owner_id, title, transcript, **create_kwargs)
    note = StructuredNote.model_validate(note or SOAP_REPLY)
    return await store.transition(
        record.id,
        SessionStatus.COMPLETED,
        fields={CipherField.NOTES: cipher.encrypt_json(note.model_dump())},
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

API_KEY = "test-api-key"
JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def api_settings(monkeypatch):
    from scribe_os.api import dependencies
    from scribe_os.config import Settings
    from scribe_os.core import auth

    settings = Settings(api_key=API_KEY, jwt_secret=JWT_SECRET, debug_mode=False)
    monkeypatch.setattr(dependencies, "get_settings", lambda: settings)
    monkeypatch.setattr(auth, "get_settings", lambda: settings)
    return settings


@pytest.fixture
def app(service, session_factory, api_settings):
    from scribe_os.api.app import create_app
    from scribe_os.core.database import get_db

    app = create_app(service=service)

    async def _test_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = _test_db
    return app


@pytest.fixture
async def client(app):
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return {"X-API-Key": API_KEY, "X-Practitioner-Id": OWNER}


@pytest.fixture
def other_headers() -> dict[str, str]:
    return {"X-API-Key": API_KEY, "X-Practitioner-Id": OTHER_OWNER}
