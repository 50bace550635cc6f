"""Exception hierarchy for the Jira aggregation pipeline."""

from typing import Optional


class DashboardError(Exception):
    """Base class for every error raised by the dashboard backend."""


class ConfigurationError(DashboardError):
    """Missing or malformed settings, detected once at startup."""


class RemoteError(DashboardError):
    """Non-2xx answer (or transport failure) from the Jira API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class AuthenticationError(RemoteError):
    """Jira rejected the credentials (401/403)."""


class RateLimitError(RemoteError):
    """Jira kept answering 429 after every retry."""


class UnavailableError(RemoteError):
    """Jira could not be reached, timed out or answered with a 5xx.

    ``reason`` is one of ``"timeout"``, ``"unreachable"`` or ``"server"``.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 reason: str = "server"):
        super().__init__(message, status_code)
        self.reason = reason


class NoBoardsFoundError(DashboardError):
    """Board discovery succeeded but returned no boards."""


class PartialBoardFailure(DashboardError):
    """A failure scoped to one board; logged and left out of the snapshot."""

    def __init__(self, board, cause: BaseException):
        super().__init__(f"Board {board.id} ({board.name}) failed: {cause}")
        self.board = board
        self.cause = cause
