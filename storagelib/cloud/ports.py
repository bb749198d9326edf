"""
Capability interfaces the orchestrator drives.

The orchestrator never touches a vendor SDK directly. Anything that implements
`ResourceClient` (blocking) or `AsyncResourceClient` (suspend-based) can be
plugged in: the Azure management binding, the in-memory cloud used by tests and
`--dry-run`, or a thread-offloading adapter.

Every operation takes a keyword-only `cancel` token. Implementations should check
it before issuing the call and, for long-running operations, between polls.
"""

from typing import AsyncIterator, Iterable, Optional, Protocol, runtime_checkable

from storagelib.cloud.models import (
    CancellationToken,
    NameAvailability,
    ResourceGroupDescriptor,
    StorageAccountDescriptor,
    StorageAccountKeySet,
    Token,
)


@runtime_checkable
class CredentialProvider(Protocol):
    """Obtains a bearer token for the management plane."""

    def acquire(self, *, cancel: Optional[CancellationToken] = None) -> Token:
        """
        Returns:
            Token: A non-empty bearer token.

        Raises:
            AuthenticationError: If the identity service returns no usable token.
        """
        ...


@runtime_checkable
class ResourceClient(Protocol):
    """Blocking storage-account management operations bound to one subscription."""

    def register_provider(self, namespace: str, *, cancel: Optional[CancellationToken] = None) -> str:
        """Register `namespace` for the subscription; returns the registration state."""
        ...

    def upsert_group(self, group: ResourceGroupDescriptor, *,
                     cancel: Optional[CancellationToken] = None) -> ResourceGroupDescriptor:
        ...

    def check_name_availability(self, name: str, *, cancel: Optional[CancellationToken] = None) -> NameAvailability:
        ...

    def upsert_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        ...

    def get_account(self, resource_group: str, name: str, *,
                    cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        ...

    def list_accounts(self, resource_group: Optional[str] = None, *,
                      cancel: Optional[CancellationToken] = None) -> Iterable[StorageAccountDescriptor]:
        """
        Lazily list accounts in `resource_group`, or across the subscription when None.

        Each call re-issues the query; the returned iterable may page internally.
        """
        ...

    def list_keys(self, resource_group: str, name: str, *,
                  cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        ...

    def regenerate_key(self, resource_group: str, name: str, key_name: str, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        ...

    def update_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        """
        Apply `account` to the existing account of the same name.

        Implementations may treat this as a full resubmission; callers must pass a
        complete descriptor.
        """
        ...

    def delete_account(self, resource_group: str, name: str, *, cancel: Optional[CancellationToken] = None) -> None:
        """
        Raises:
            NotFoundError: If the account does not exist.
        """
        ...


@runtime_checkable
class AsyncResourceClient(Protocol):
    """Suspend-based mirror of `ResourceClient`."""

    async def register_provider(self, namespace: str, *, cancel: Optional[CancellationToken] = None) -> str:
        ...

    async def upsert_group(self, group: ResourceGroupDescriptor, *,
                           cancel: Optional[CancellationToken] = None) -> ResourceGroupDescriptor:
        ...

    async def check_name_availability(self, name: str, *,
                                      cancel: Optional[CancellationToken] = None) -> NameAvailability:
        ...

    async def upsert_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        ...

    async def get_account(self, resource_group: str, name: str, *,
                          cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        ...

    def list_accounts(self, resource_group: Optional[str] = None, *,
                      cancel: Optional[CancellationToken] = None) -> AsyncIterator[StorageAccountDescriptor]:
        ...

    async def list_keys(self, resource_group: str, name: str, *,
                        cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        ...

    async def regenerate_key(self, resource_group: str, name: str, key_name: str, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        ...

    async def update_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        ...

    async def delete_account(self, resource_group: str, name: str, *,
                             cancel: Optional[CancellationToken] = None) -> None:
        ...
