"""Session pipeline orchestration."""

from scribe_os.pipeline.orchestrator import PipelineOutcome, PipelineResult, SessionPipeline

__all__ = ["PipelineOutcome", "PipelineResult", "SessionPipeline"]
