"""Audit sinks for session and export activity.

The core only emits ``AuditEvent`` records. Delivery is fire-and-forget:
``record_safely`` logs a failing sink and returns, so an unavailable audit
backend never fails the operation that triggered it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scribe_os.core.repository import AuditRepository

logger = logging.getLogger(__name__)


class AuditEvent(BaseModel):
    session_id: str
    action: str
    detail: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    resource_type: str = "clinical_session"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(ABC):
    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Persist one event. May raise; callers use ``record_safely``."""


class JsonlAuditSink(AuditSink):
    """Append-only JSONL access log."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(line + "\n")

    async def record(self, event: AuditEvent) -> None:
        await asyncio.to_thread(self._append, event.model_dump_json())


class DatabaseAuditSink(AuditSink):
    """Writes to the ``audit_log`` table in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        async with self._session_factory() as db:
            await AuditRepository(db).log_action(
                action=event.action,
                resource_type=event.resource_type,
                resource_id=event.session_id,
                user_id=event.user_id,
                details=json.loads(json.dumps(event.detail, default=str)) or None,
            )
            await db.commit()


class CompositeAuditSink(AuditSink):
    def __init__(self, *sinks: AuditSink):
        self.sinks = list(sinks)

    async def record(self, event: AuditEvent) -> None:
        for sink in self.sinks:
            await record_safely(sink, event)


async def record_safely(sink: Optional[AuditSink], event: AuditEvent) -> None:
    if sink is None:
        return
    try:
        await sink.record(event)
    except Exception as e:
        logger.error(
            "Audit sink %s failed for %s on %s: %s",
            type(sink).__name__,
            event.action,
            event.session_id,
            type(e).__name__,
        )
