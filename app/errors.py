# =============================================================================
# Error Taxonomy
# =============================================================================
#
# Every failure the services raise is one of the classes below. Each carries
# the HTTP status it maps to, a human-readable message and, where available,
# the underlying cause. app/main.py turns them into JSON bodies of the form:
#
#   {"message": "...", "error": "<cause>"}
#
# The "error" key is only present when a cause was attached.
# =============================================================================

from __future__ import annotations


class AgentRecordsError(Exception):
    """Base exception for the agent records service."""

    status_code: int = 500

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(AgentRecordsError):
    """A required field is missing or malformed."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.field = field


class ConflictError(AgentRecordsError):
    """A unique field value is already taken."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.field = field


class NotFoundError(AgentRecordsError):
    """No record matches the given identifier."""

    status_code = 404


class ParseError(AgentRecordsError):
    """The multipart request body could not be parsed."""

    status_code = 400


class UploadError(AgentRecordsError):
    """Blob storage rejected or failed an operation."""

    status_code = 500


class PersistenceError(AgentRecordsError):
    """The document database failed a read or write."""

    status_code = 500
