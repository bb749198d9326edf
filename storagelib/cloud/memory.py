"""
In-memory stand-in for the Azure management plane.

Used by the test-suite and by `storagelib run --dry-run`. It reproduces the
behaviours the orchestrator depends on: idempotent group/account upserts, a
global account-name namespace shared across clients, paged lazy listings, key
regeneration, full-resubmission updates and NotFound on missing resources.
"""

import base64
import dataclasses
import logging
import secrets
import threading
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Iterator, List, Optional, Set, Tuple

from storagelib.cloud.errors import (
    AuthenticationError,
    NameUnavailableError,
    NotFoundError,
    ProviderRegistrationError,
    RemoteServiceError,
)
from storagelib.cloud.models import (
    AccountKey,
    CancellationToken,
    NameAvailability,
    ResourceGroupDescriptor,
    StorageAccountDescriptor,
    StorageAccountKeySet,
    Token,
)
from storagelib.util.sanitization import Sanitization

logger = logging.getLogger(__name__)


class NameRegistry:
    """Global storage-account namespace; share one instance between clients to simulate other tenants."""

    def __init__(self):
        self._owners: Dict[str, Tuple[int, str]] = {}
        self._lock = threading.Lock()

    def owner(self, name: str) -> Optional[Tuple[int, str]]:
        with self._lock:
            return self._owners.get(name)

    def claim(self, name: str, owner: Tuple[int, str]) -> bool:
        with self._lock:
            current = self._owners.setdefault(name, owner)
            return current == owner

    def release(self, name: str) -> None:
        with self._lock:
            self._owners.pop(name, None)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._owners


def _new_key_value() -> str:
    return base64.b64encode(secrets.token_bytes(64)).decode("ascii")


class InMemoryCredentialProvider:
    """Hands out a fixed local token; an empty `value` simulates a failed sign-in."""

    def __init__(self, value: str = "local-dry-run-token"):
        self.value = value
        self.acquired = 0

    def acquire(self, *, cancel: Optional[CancellationToken] = None) -> Token:
        if cancel is not None:
            cancel.raise_if_cancelled("InMemoryCredentialProvider.acquire")
        self.acquired += 1
        if not self.value:
            raise AuthenticationError("[InMemoryCredentialProvider] Failed to obtain the JWT token")
        return Token(value=self.value)


class InMemoryResourceClient:
    """
    ResourceClient implementation backed by dictionaries.

    Args:
        subscription_id (str): Used to build resource ids.
        registry (NameRegistry): Global name namespace; a private one is created if omitted.
        page_size (int): Items per page yielded by list_accounts.
        key_names (tuple): Names of the keys every new account receives.
        rejected_providers (set): Namespaces whose registration is refused.
    """

    def __init__(
            self,
            subscription_id: str = "00000000-0000-0000-0000-000000000000",
            *,
            registry: Optional[NameRegistry] = None,
            page_size: int = 2,
            key_names: Tuple[str, ...] = ("key1", "key2"),
            rejected_providers: Optional[Set[str]] = None,
    ):
        self.subscription_id = subscription_id
        self.registry = registry or NameRegistry()
        self.page_size = max(1, page_size)
        self.key_names = key_names
        self.rejected_providers = {p.lower() for p in (rejected_providers or set())}
        self.providers: Dict[str, str] = {}
        self.groups: Dict[str, ResourceGroupDescriptor] = {}
        self.accounts: Dict[Tuple[str, str], StorageAccountDescriptor] = {}
        self.keys: Dict[Tuple[str, str], StorageAccountKeySet] = {}
        self.calls: List[str] = []
        self.close_count = 0
        self._faults: Dict[str, Deque[BaseException]] = defaultdict(deque)
        self._lock = threading.RLock()

    # ─── Test hooks ───────────────────────────────────────────────────────

    def factory(self) -> Callable[[Token], "InMemoryResourceClient"]:
        """Bind-to-token callable matching AzureResourceClient.factory."""
        def _bind(token: Token) -> "InMemoryResourceClient":
            if token is None or not token:
                raise AuthenticationError("[InMemoryResourceClient] Token provider cannot be null")
            return self
        return _bind

    def inject_fault(self, operation: str, error: BaseException, times: int = 1) -> None:
        """Make the next `times` calls to `operation` raise `error`."""
        for _ in range(times):
            self._faults[operation].append(error)

    def group_names(self) -> List[str]:
        return [g.name for g in self.groups.values()]

    def _enter(self, operation: str, cancel: Optional[CancellationToken]) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled(f"InMemoryResourceClient.{operation}")
        self.calls.append(operation)
        if self._faults[operation]:
            raise self._faults[operation].popleft()

    def _account_id(self, resource_group: str, name: str) -> str:
        return (f"/subscriptions/{self.subscription_id}/resourceGroups/{resource_group}"
                f"/providers/Microsoft.Storage/storageAccounts/{name}")

    def _require_group(self, resource_group: str) -> ResourceGroupDescriptor:
        group = self.groups.get(resource_group.lower())
        if group is None:
            raise NotFoundError(f"[InMemoryResourceClient] Resource group '{resource_group}' could not be found.")
        return group

    def _require_account(self, resource_group: str, name: str) -> StorageAccountDescriptor:
        self._require_group(resource_group)
        account = self.accounts.get((resource_group.lower(), name))
        if account is None:
            raise NotFoundError(
                f"[InMemoryResourceClient] The storage account '{name}' was not found "
                f"in resource group '{resource_group}'."
            )
        return account

    # ─── Provider / Group ─────────────────────────────────────────────────

    def register_provider(self, namespace: str, *, cancel: Optional[CancellationToken] = None) -> str:
        self._enter("register_provider", cancel)
        if namespace.lower() in self.rejected_providers:
            raise ProviderRegistrationError(
                f"[InMemoryResourceClient] The subscription is not permitted to register '{namespace}'."
            )
        with self._lock:
            self.providers[namespace.lower()] = "Registered"
        return "Registered"

    def upsert_group(self, group: ResourceGroupDescriptor, *,
                     cancel: Optional[CancellationToken] = None) -> ResourceGroupDescriptor:
        self._enter("upsert_group", cancel)
        with self._lock:
            existing = self.groups.get(group.name.lower())
            if existing is not None and existing.location != group.location:
                raise RemoteServiceError(
                    f"[InMemoryResourceClient] Invalid resource group location '{group.location}'. "
                    f"The Resource group already exists in location '{existing.location}'.",
                    status_code=409,
                    error_code="InvalidResourceGroupLocation",
                )
            stored = dataclasses.replace(group, provisioning_state="Succeeded")
            self.groups[group.name.lower()] = stored
            return stored

    # ─── Accounts ─────────────────────────────────────────────────────────

    def check_name_availability(self, name: str, *, cancel: Optional[CancellationToken] = None) -> NameAvailability:
        self._enter("check_name_availability", cancel)
        if not Sanitization.is_storage_account(name):
            return NameAvailability(
                available=False,
                reason="AccountNameInvalid",
                message=f"{name} is not a valid storage account name.",
            )
        if name in self.registry:
            return NameAvailability(
                available=False,
                reason="AlreadyExists",
                message=f"The storage account named {name} is already taken.",
            )
        return NameAvailability(available=True)

    def upsert_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        self._enter("upsert_account", cancel)
        with self._lock:
            self._require_group(resource_group)
            if not Sanitization.is_storage_account(account.name):
                raise NameUnavailableError(
                    f"[InMemoryResourceClient] {account.name} is not a valid storage account name.",
                    name=account.name,
                    reason="AccountNameInvalid",
                )
            owner = (id(self), resource_group.lower())
            if not self.registry.claim(account.name, owner):
                raise NameUnavailableError(
                    f"[InMemoryResourceClient] The storage account named {account.name} is already taken.",
                    name=account.name,
                    reason="StorageAccountAlreadyTaken",
                )
            key = (resource_group.lower(), account.name)
            stored = dataclasses.replace(
                account,
                tags=dict(account.tags),
                id=self._account_id(resource_group, account.name),
                provisioning_state="Succeeded",
            )
            self.accounts[key] = stored
            if key not in self.keys:
                self.keys[key] = StorageAccountKeySet(keys=tuple(
                    AccountKey(name=n, value=_new_key_value(), permissions="FULL") for n in self.key_names
                ))
            return stored

    def get_account(self, resource_group: str, name: str, *,
                    cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        self._enter("get_account", cancel)
        with self._lock:
            return self._require_account(resource_group, name)

    def list_accounts(self, resource_group: Optional[str] = None, *,
                      cancel: Optional[CancellationToken] = None) -> Iterator[StorageAccountDescriptor]:
        """
        Generator: nothing is queried until iteration starts, and results are
        handed out `page_size` at a time from a snapshot taken at that moment.
        """
        self._enter("list_accounts", cancel)
        with self._lock:
            if resource_group:
                self._require_group(resource_group)
                scope = resource_group.lower()
                snapshot = [a for (g, _), a in self.accounts.items() if g == scope]
            else:
                snapshot = list(self.accounts.values())

        for start in range(0, len(snapshot), self.page_size):
            if cancel is not None:
                cancel.raise_if_cancelled("InMemoryResourceClient.list_accounts")
            for account in snapshot[start:start + self.page_size]:
                yield account

    def update_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        """
        Full resubmission: the stored descriptor is replaced by `account` wholesale,
        so fields the caller leaves empty are cleared.
        """
        self._enter("update_account", cancel)
        with self._lock:
            existing = self._require_account(resource_group, account.name)
            stored = dataclasses.replace(
                account,
                tags=dict(account.tags),
                id=existing.id,
                provisioning_state="Succeeded",
            )
            self.accounts[(resource_group.lower(), account.name)] = stored
            return stored

    def delete_account(self, resource_group: str, name: str, *, cancel: Optional[CancellationToken] = None) -> None:
        self._enter("delete_account", cancel)
        with self._lock:
            self._require_account(resource_group, name)
            key = (resource_group.lower(), name)
            del self.accounts[key]
            self.keys.pop(key, None)
            self.registry.release(name)

    # ─── Keys ─────────────────────────────────────────────────────────────

    def list_keys(self, resource_group: str, name: str, *,
                  cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        self._enter("list_keys", cancel)
        with self._lock:
            self._require_account(resource_group, name)
            return self.keys[(resource_group.lower(), name)]

    def regenerate_key(self, resource_group: str, name: str, key_name: str, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        self._enter("regenerate_key", cancel)
        with self._lock:
            self._require_account(resource_group, name)
            key = (resource_group.lower(), name)
            current = self.keys[key]
            if key_name.lower() not in (k.name.lower() for k in current):
                raise RemoteServiceError(
                    f"[InMemoryResourceClient] Invalid key name '{key_name}'.",
                    status_code=400,
                    error_code="InvalidKeyName",
                )
            self.keys[key] = StorageAccountKeySet(keys=tuple(
                dataclasses.replace(k, value=_new_key_value()) if k.name.lower() == key_name.lower() else k
                for k in current
            ))
            return self.keys[key]

    # ─── Lifetime ─────────────────────────────────────────────────────────

    def close(self) -> None:
        """Counts closes; the in-memory state outlives them so one fixture can back several runs."""
        self.close_count += 1

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()
