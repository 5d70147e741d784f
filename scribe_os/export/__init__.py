"""Multi-format export of completed sessions."""

from scribe_os.export.engine import ExportEngine
from scribe_os.export.storage import ArtifactStore

__all__ = ["ArtifactStore", "ExportEngine"]
