"""Error taxonomy for the sync engine.

Network and business errors are raised at the backend boundary and caught by
the engine components, which turn them into result objects for the caller.
"""

from enum import Enum


class AuthErrorKind(str, Enum):
    """Credential problems the server can report."""

    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    MISSING_CREDENTIALS = "missing_credentials"


class JobSyncError(Exception):
    """Base class for sync engine errors."""


class JobsApiError(JobSyncError):
    """A request failed in transport or came back with a non-success response."""

    def __init__(self, message: str, status_code: int | None = None, *, transport: bool = False) -> None:
        self.message = message
        self.status_code = status_code
        self.transport = transport
        super().__init__(message)


class ReauthenticationRequired(JobSyncError):
    """The credential expired and could not be refreshed; the user must log in again."""

    def __init__(self, kind: AuthErrorKind | None = None) -> None:
        self.kind = kind
        if kind is None:
            super().__init__("Re-authentication required")
        else:
            super().__init__(f"Re-authentication required ({kind.value})")


class DuplicateJobError(JobSyncError):
    """The server already tracks a job with this title and company for the user."""
