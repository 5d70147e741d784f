"""Session record store and audio artifact storage."""

from scribe_os.sessions.audio import AudioStore
from scribe_os.sessions.store import SessionStore

__all__ = ["AudioStore", "SessionStore"]
