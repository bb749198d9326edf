"""
Cloud collaborators: the capability interfaces, their Azure and in-memory bindings,
credential providers, and the value types and errors they exchange.
"""

from storagelib.cloud.errors import (
    AuthenticationError,
    ConfigError,
    NameUnavailableError,
    NotFoundError,
    OperationCancelledError,
    ProviderRegistrationError,
    RemoteServiceError,
    StorageLibError,
)
from storagelib.cloud.models import (
    AccountKey,
    CancellationToken,
    Identity,
    NameAvailability,
    ResourceGroupDescriptor,
    RunResult,
    RunState,
    Step,
    StorageAccountDescriptor,
    StorageAccountKeySet,
    Token,
)
