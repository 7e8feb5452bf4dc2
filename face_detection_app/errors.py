"""
Exception hierarchy for the face detection app.

Every error raised on purpose by this package derives from FaceAppError,
so boundaries (HTTP handlers, session operations, the CLI) can convert
them into responses or user-facing messages without catching everything.
"""

import enum
from typing import Any, Optional


class FaceAppError(Exception):
    """Base exception for the face detection app."""


class ConfigurationError(FaceAppError):
    """Raised when the proxy is started without required configuration."""


class PayloadValidationError(FaceAppError):
    """Raised when a detection request body is missing, ambiguous or out of bounds.

    Always reported to the caller as a 400 and never forwarded.
    """


class FaceServiceError(FaceAppError):
    """A failed call to the external face-detection service.

    Attributes:
        status_code: HTTP status to return to the caller.
        message: Human-readable error message.
        code: Machine code reported by the service ('Unknown' if none).
        suggestion: Actionable hint for recognized codes, else ''.
        details: Raw error body from the service, for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "Unknown",
        suggestion: str = "",
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.suggestion = suggestion
        self.details = details

    def to_dict(self) -> dict:
        """Return the caller-facing JSON body."""
        return {
            "error": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class ProxyRequestError(FaceAppError):
    """A failed call from the client to the detection proxy."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CameraErrorKind(enum.Enum):
    """Classified causes of a camera acquisition failure."""

    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    IN_USE = "in_use"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class CameraError(FaceAppError):
    """Raised when the camera cannot be acquired or read."""

    def __init__(self, kind: CameraErrorKind, detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


class InvalidTransitionError(FaceAppError):
    """Raised when the session is asked to move along an undefined edge."""
