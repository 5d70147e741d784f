"""JSONL observability logger."""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from scribe_os.observability.events import (
    EventType,
    ExportEvent,
    ExternalCallEvent,
    ObservabilityEvent,
    PipelineEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Writes structured events to JSON Lines files for later analysis.

    Write failures are logged and swallowed; telemetry never breaks the
    operation it describes.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(self, log_dir: Optional[Path] = None, enabled: bool = True):
        self.enabled = enabled
        self.log_dir = Path(log_dir) if log_dir is not None else Path("data/logs")
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._log_files: dict[str, Path] = {
            "external": self.log_dir / "external_calls.jsonl",
            "pipeline": self.log_dir / "pipeline.jsonl",
            "exports": self.log_dir / "exports.jsonl",
        }
        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        if cls._instance is None:
            from scribe_os.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.observability_log_dir,
                enabled=settings.observability_enabled,
            )
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def generate_request_id(self) -> str:
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning("Observability callback failed: %s", e)

        if not self.enabled:
            return
        try:
            log_file = self._log_files[log_type]
            with open(log_file, "a") as f:
                f.write(event.model_dump_json() + "\n")
        except Exception as e:
            logger.warning("Failed to write observability event: %s", e)

    @contextmanager
    def external_call(
        self,
        provider: str,
        model: str,
        operation: str,
        *,
        session_id: Optional[str] = None,
        input_size: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        """Time one external request.

        Usage:
            with obs.external_call("openai", "whisper-1", "transcription") as event:
                text = await client.transcribe(...)
                event.output_size = len(text)
        """
        start_time = time.time()
        event = ExternalCallEvent(
            event_type=EventType.EXTERNAL_CALL_START,
            provider=provider,
            model=model,
            operation=operation,
            session_id=session_id,
            input_size=input_size,
            request_id=request_id or self.generate_request_id(),
        )
        try:
            yield event
            event.event_type = EventType.EXTERNAL_CALL_SUCCESS
        except Exception as e:
            event.event_type = EventType.EXTERNAL_CALL_ERROR
            event.error_type = type(e).__name__
            event.retryable = getattr(e, "retryable", None)
            raise
        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "external")

    def log_pipeline_stage(
        self,
        session_id: str,
        stage: str,
        outcome: str,
        *,
        status: Optional[str] = None,
        attempt: int = 1,
        degraded: bool = False,
        error_type: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        event = PipelineEvent(
            session_id=session_id,
            stage=stage,
            outcome=outcome,
            status=status,
            attempt=attempt,
            degraded=degraded,
            error_type=error_type,
            duration_ms=duration_ms,
        )
        self._write_event(event, "pipeline")

    def log_export(
        self,
        owner_id: str,
        format: str,
        session_count: int,
        placeholder_count: int,
        size_bytes: int,
        duration_ms: Optional[float] = None,
    ) -> None:
        event = ExportEvent(
            owner_id=owner_id,
            format=format,
            session_count=session_count,
            placeholder_count=placeholder_count,
            size_bytes=size_bytes,
            duration_ms=duration_ms,
        )
        self._write_event(event, "exports")

    def get_recent_events(self, log_type: str, limit: int = 100) -> list[dict[str, Any]]:
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if "error" in e.get("event_type", ""))
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total
        return {
            "total": total,
            "errors": errors,
            "error_rate": errors / total,
            "avg_duration_ms": avg_duration,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
