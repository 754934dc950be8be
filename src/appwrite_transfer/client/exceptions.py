"""Custom exceptions for Appwrite Transfer.

This module defines exception classes for the error conditions that can
occur while resolving adapters, talking to provider APIs, persisting
migration records and moving individual resources.
"""


class TransferEngineError(Exception):
    """Base exception for all transfer engine errors."""

    pass


class APIError(TransferEngineError):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class ConflictError(APIError):
    """Raised when a resource conflict occurs (409 Conflict).

    This typically indicates the resource already exists at the destination.
    """

    pass


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            retry_after: Seconds to wait before retrying (from Retry-After header)
        """
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class NetworkError(TransferEngineError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class ConfigurationError(TransferEngineError):
    """Raised when configuration is invalid or missing."""

    pass


class QueryValidationError(TransferEngineError):
    """Raised when a migration list query is malformed or not allowed."""

    pass


class StructuralError(TransferEngineError):
    """Errors that abort a whole migration before or during the transfer.

    Structural errors are raised, caught at the top of a worker run and
    recorded on the migration record like per-resource failures.
    """

    pass


class UnsupportedProviderError(StructuralError):
    """Raised when a source or destination tag has no registered adapter."""

    def __init__(self, provider: str, kind: str = "source"):
        """Initialize unsupported provider error.

        Args:
            provider: The unknown provider tag
            kind: Either "source" or "destination"
        """
        self.provider = provider
        self.kind = kind
        super().__init__(f"Invalid {kind} type '{provider}'")


class InvalidCredentialsError(StructuralError):
    """Raised when provider credentials are missing or malformed."""

    pass


class ConnectivityError(StructuralError):
    """Raised when a provider cannot be reached or rejects authentication."""

    pass


class PersistenceError(StructuralError):
    """Raised when reading or writing migration state fails."""

    pass


class TransferError(TransferEngineError):
    """A failure to move one resource instance.

    Adapters capture these instead of raising them: a source records them
    while fetching and a destination records them while pushing. The
    original exception (if any) is kept in ``cause``.

    Attributes:
        resource_name: Singular resource name (e.g. "user", "document")
        resource_id: Identifier of the resource instance
        message: Human readable failure description
        cause: Underlying exception, when there is one
    """

    def __init__(
        self,
        resource_name: str,
        resource_id: str,
        message: str,
        cause: BaseException | None = None,
    ):
        self.resource_name = resource_name
        self.resource_id = resource_id
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"TransferError(resource_name={self.resource_name!r}, "
            f"resource_id={self.resource_id!r}, message={self.message!r})"
        )


class MigrationError(TransferEngineError):
    """Raised when migration operations fail."""

    pass


class MigrationNotFoundError(MigrationError):
    """Raised when a project or migration record referenced by a job does not exist."""

    pass


class InvalidTransitionError(MigrationError):
    """Raised when a migration record would move backwards through its stages."""

    pass


class InvalidJobError(MigrationError):
    """Raised when a queue message cannot be turned into a migration job."""

    pass


class MigrationFailedError(MigrationError):
    """Raised after a migration was finalized with status ``failed``.

    The queue layer uses this to retry or dead-letter the job. The record
    has already been persisted when this is raised.
    """

    def __init__(self, migration_id: str, errors: list[str] | None = None):
        """Initialize migration failed error.

        Args:
            migration_id: ID of the failed migration
            errors: Formatted error messages recorded on the migration
        """
        self.migration_id = migration_id
        self.errors = list(errors or [])
        super().__init__("Migration failed")
