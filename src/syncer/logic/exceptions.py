"""
Domain exceptions for the Syncer Service.

Each failure class of the sync engine has its own exception. Whether a
class aborts an operation or is downgraded to a recorded outcome is
decided by the component that catches it.
"""


class SyncError(Exception):
    """Base exception for syncer errors."""

    def __init__(self, message: str):
        """
        Initialize syncer error.

        Args:
            message: Error description.
        """
        self.message = message
        super().__init__(message)


class ConfigurationMissingError(SyncError):
    """Raised when provider client settings have not been stored yet."""

    def __init__(self, key: str = "google"):
        """
        Initialize configuration missing error.

        Args:
            key: Settings key that is absent.
        """
        self.key = key
        super().__init__(f"Provider configuration missing: {key}")


class AuthenticationExpiredError(SyncError):
    """Raised when the access token is stale and must be refreshed."""

    def __init__(self, reason: str = "Access token expired"):
        """
        Initialize authentication expired error.

        Args:
            reason: Description of the expiry.
        """
        self.reason = reason
        super().__init__(reason)


class AuthenticationFailedError(SyncError):
    """Raised when the provider rejects a token exchange or refresh."""

    def __init__(self, reason: str, status_code: int | None = None):
        """
        Initialize authentication failed error.

        Args:
            reason: Description of the rejection.
            status_code: HTTP status returned by the token endpoint, if any.
        """
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Authentication failed: {reason}")


class InvalidAuthTransitionError(SyncError):
    """Raised when the auth state machine is asked for an illegal transition."""

    def __init__(self, current: str, target: str):
        """
        Initialize invalid transition error.

        Args:
            current: Current state name.
            target: Requested state name.
        """
        self.current = current
        self.target = target
        super().__init__(f"Invalid auth transition: {current} -> {target}")


class RecordValidationError(SyncError):
    """Raised when a raw file record fails validation."""

    def __init__(self, file_id: str | None, errors: list[str]):
        """
        Initialize record validation error.

        Args:
            file_id: Id of the offending record, if it has one.
            errors: Blocking validation errors.
        """
        self.file_id = file_id
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class PersistenceError(SyncError):
    """Raised when a store write for a single record fails."""

    def __init__(self, file_id: str | None, reason: str):
        """
        Initialize persistence error.

        Args:
            file_id: Id of the record being written.
            reason: Reason for the failure.
        """
        self.file_id = file_id
        self.reason = reason
        super().__init__(f"Failed to persist file {file_id}: {reason}")


class ProviderError(SyncError):
    """Raised when a Drive API call fails."""

    def __init__(self, reason: str, status_code: int | None = None):
        """
        Initialize provider error.

        Args:
            reason: Reason for the failure.
            status_code: HTTP status code, if a response was received.
        """
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Google Drive API error: {reason}")


class ProviderAuthorizationError(ProviderError):
    """Raised when a Drive API call is rejected for lack of authorization."""


class SchedulerNotReadyError(SyncError):
    """Raised when periodic sync is started before authentication is ready."""

    def __init__(self, reason: str = "No authenticated session"):
        """
        Initialize scheduler not ready error.

        Args:
            reason: Why the scheduler cannot start.
        """
        self.reason = reason
        super().__init__(f"Cannot start periodic sync: {reason}")


class DatabaseConnectionError(SyncError):
    """Raised when the canonical store cannot be reached at startup."""

    def __init__(self, reason: str):
        """
        Initialize database connection error.

        Args:
            reason: Reason for the connection failure.
        """
        self.reason = reason
        super().__init__(f"Database connection failed: {reason}")
