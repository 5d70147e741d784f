"""Observability events. Fields carry ids, sizes and error classes, never PHI."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    EXTERNAL_CALL_START = "external_call_start"
    EXTERNAL_CALL_SUCCESS = "external_call_success"
    EXTERNAL_CALL_ERROR = "external_call_error"
    PIPELINE_STAGE = "pipeline_stage"
    EXPORT_CREATED = "export_created"


class ObservabilityEvent(BaseModel):
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExternalCallEvent(ObservabilityEvent):
    """One speech-to-text or structuring request."""

    provider: str
    model: str
    operation: str

    input_size: Optional[int] = None
    output_size: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    error_type: Optional[str] = None
    retryable: Optional[bool] = None


class PipelineEvent(ObservabilityEvent):
    """Outcome of one orchestrator stage."""

    event_type: EventType = EventType.PIPELINE_STAGE
    stage: str
    outcome: str
    status: Optional[str] = None
    attempt: int = 1
    degraded: bool = False
    error_type: Optional[str] = None


class ExportEvent(ObservabilityEvent):
    event_type: EventType = EventType.EXPORT_CREATED
    format: str
    owner_id: str
    session_count: int
    placeholder_count: int = 0
    size_bytes: int = 0
