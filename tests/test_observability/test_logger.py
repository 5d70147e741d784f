"""Tests for the JSONL observability logger."""

import pytest

from scribe_os.core.errors import TranscriptionError
from scribe_os.observability import ObservabilityLogger
from scribe_os.observability.events import EventType


class TestObservabilityLogger:
    def test_external_call_success(self, obs):
        with obs.external_call("openai", "whisper-1", "transcription", session_id="s1", input_size=100) as event:
            event.output_size = 42

        events = obs.get_recent_events("external")
        assert len(events) == 1
        assert events[0]["event_type"] == EventType.EXTERNAL_CALL_SUCCESS.value
        assert events[0]["output_size"] == 42
        assert events[0]["duration_ms"] is not None

    def test_external_call_error_records_retryable(self, obs):
        with pytest.raises(TranscriptionError):
            with obs.external_call("openai", "whisper-1", "transcription"):
                raise TranscriptionError("boom", retryable=True, reason="timeout")

        event = obs.get_recent_events("external")[-1]
        assert event["event_type"] == EventType.EXTERNAL_CALL_ERROR.value
        assert event["error_type"] == "TranscriptionError"
        assert event["retryable"] is True

    def test_pipeline_and_export_events(self, obs):
        obs.log_pipeline_stage("s1", "structuring", "degraded", status="COMPLETED", degraded=True)
        obs.log_export("p1", "csv", session_count=3, placeholder_count=1, size_bytes=120)

        assert obs.get_recent_events("pipeline")[0]["degraded"] is True
        assert obs.get_recent_events("exports")[0]["placeholder_count"] == 1

    def test_stats(self, obs):
        with obs.external_call("openai", "m", "structuring"):
            pass
        with pytest.raises(ValueError):
            with obs.external_call("openai", "m", "structuring"):
                raise ValueError("x")

        stats = obs.get_stats("external")
        assert stats["total"] == 2
        assert stats["errors"] == 1
        assert obs.get_stats("pipeline") == {"total": 0}

    def test_disabled_logger_writes_nothing_but_calls_back(self, tmp_path):
        seen = []
        logger = ObservabilityLogger(log_dir=tmp_path / "off", enabled=False)
        logger.add_callback(seen.append)

        logger.log_pipeline_stage("s1", "transcription", "committed")

        assert len(seen) == 1
        assert logger.get_recent_events("pipeline") == []
        assert not (tmp_path / "off").exists()
