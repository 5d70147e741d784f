"""Transcription and structuring adapter."""

from scribe_os.scribe.adapter import ScribeAdapter

__all__ = ["ScribeAdapter"]
