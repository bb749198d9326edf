from typing import Optional


class StorageLibError(Exception):
    """
    Base class for every failure the lifecycle runner can surface.

    Each subclass carries a fixed `exit_code` so the CLI can map a failed run
    onto a stable process exit status.
    """

    exit_code: int = 1

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigError(StorageLibError):
    """Missing, placeholder, or malformed configuration."""

    exit_code = 9


class AuthenticationError(StorageLibError):
    """Credential acquisition failed or returned an empty token."""

    exit_code = 3


class ProviderRegistrationError(StorageLibError):
    """The resource provider refused to register for the subscription."""

    exit_code = 4


class NameUnavailableError(StorageLibError):
    """
    The requested storage account name collides in the global namespace.

    Args:
        name (str): The rejected account name.
        reason (str): Vendor reason code (e.g. "AlreadyExists", "AccountNameInvalid").
    """

    exit_code = 5

    def __init__(self, message: str = "", *, name: Optional[str] = None, reason: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause)
        self.name = name
        self.reason = reason


class NotFoundError(StorageLibError):
    """The referenced resource group or storage account does not exist."""

    exit_code = 6


class RemoteServiceError(StorageLibError):
    """
    Any other fault reported by the remote service.

    `transient` marks throttling, server-side and connection faults; those are the
    only errors the retry loop will re-attempt.
    """

    exit_code = 7

    def __init__(self, message: str = "", *, status_code: Optional[int] = None, error_code: Optional[str] = None,
                 transient: bool = False, cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.error_code = error_code
        self.transient = transient


class OperationCancelledError(StorageLibError):
    """Cancellation was requested before or during a remote call."""

    exit_code = 8


def is_transient(error: BaseException) -> bool:
    return isinstance(error, RemoteServiceError) and error.transient
