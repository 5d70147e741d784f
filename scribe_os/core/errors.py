"""Domain error taxonomy.

Store and cipher errors stop the current operation. External-service
errors carry a ``retryable`` flag so the pipeline can decide whether a
second attempt makes sense.
"""

from typing import Optional


class ScribeError(Exception):
    """Base exception for ScribeOS errors."""

    pass


class NotFoundError(ScribeError):
    """Session, export artifact or audio reference does not exist."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class AccessDeniedError(ScribeError):
    """Caller is not the owner of the requested record."""

    pass


class InvalidStateError(ScribeError):
    """Operation is not allowed in the session's current status."""

    pass


class IllegalTransitionError(InvalidStateError):
    """Requested status edge is not part of the session state machine."""

    def __init__(self, session_id: str, current: str, requested: str):
        super().__init__(f"Session {session_id}: illegal transition {current} -> {requested}")
        self.session_id = session_id
        self.current = current
        self.requested = requested


class CipherError(ScribeError):
    """Ciphertext is malformed or was produced under a foreign key."""

    pass


class ExternalServiceError(ScribeError):
    """An external speech or structuring service failed."""

    operation = "external"

    def __init__(self, message: str, *, retryable: bool = False, reason: Optional[str] = None):
        super().__init__(message)
        self.retryable = retryable
        self.reason = reason or message


class TranscriptionError(ExternalServiceError):
    """Speech-to-text failed; nothing was saved."""

    operation = "transcription"


class StructuringError(ExternalServiceError):
    """SOAP note structuring failed."""

    operation = "structuring"


class CodingError(ExternalServiceError):
    """Coding suggestion failed."""

    operation = "coding"


class DocumentError(ExternalServiceError):
    """Draft document generation failed."""

    operation = "document"


class ExportFormatError(ScribeError):
    """Unsupported export format value."""

    pass
