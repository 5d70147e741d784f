"""Structured telemetry for external calls, pipeline stages and exports."""

from scribe_os.observability.events import (
    EventType,
    ExportEvent,
    ExternalCallEvent,
    ObservabilityEvent,
    PipelineEvent,
)
from scribe_os.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "EventType",
    "ExportEvent",
    "ExternalCallEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "PipelineEvent",
    "get_observability_logger",
]
