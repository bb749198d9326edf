import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import ResourceGroup
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.storage.models import (
    Sku,
    StorageAccountCheckNameAvailabilityParameters,
    StorageAccountCreateParameters,
    StorageAccountRegenerateKeyParameters,
    StorageAccountUpdateParameters,
)

from storagelib.cloud.credentials import StaticTokenCredential
from storagelib.cloud.errors import (
    AuthenticationError,
    NameUnavailableError,
    NotFoundError,
    ProviderRegistrationError,
    RemoteServiceError,
    StorageLibError,
    is_transient,
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
from storagelib.context.decorator import traced

logger = logging.getLogger(__name__)

ACCOUNT_RESOURCE_TYPE = "Microsoft.Storage/storageAccounts"

# ARM error codes meaning "this name belongs to someone else" or "this name can never be used"
NAME_TAKEN_CODES = {
    "StorageAccountAlreadyTaken",
    "StorageAccountAlreadyExists",
    "AccountNameInvalid",
}


def _value(x) -> Optional[str]:
    """Unwrap SDK string enums to their wire value."""
    if x is None:
        return None
    return str(getattr(x, "value", x))


def _error_code(e: HttpResponseError) -> Optional[str]:
    err = getattr(e, "error", None)
    return getattr(err, "code", None) or getattr(e, "error_code", None)


@contextmanager
def translate_errors(operation: str, *, name: Optional[str] = None):
    """
    Map azure.core exceptions onto the storagelib error taxonomy.

    Args:
        operation (str): Label used as message prefix.
        name (str): Account name, attached to NameUnavailableError.
    """
    try:
        yield
    except StorageLibError:
        raise
    except ClientAuthenticationError as e:
        raise AuthenticationError(f"[{operation}] {e.message or e}", cause=e) from e
    except ResourceNotFoundError as e:
        raise NotFoundError(f"[{operation}] {e.message or e}", cause=e) from e
    except HttpResponseError as e:
        code = _error_code(e)
        status = e.status_code
        if code in NAME_TAKEN_CODES:
            raise NameUnavailableError(f"[{operation}] {e.message or e}", name=name, reason=code, cause=e) from e
        transient = status == 429 or (status is not None and status >= 500)
        raise RemoteServiceError(
            f"[{operation}] {e.message or e}",
            status_code=status,
            error_code=code,
            transient=transient,
            cause=e,
        ) from e
    except (ServiceRequestError, ServiceResponseError) as e:
        raise RemoteServiceError(f"[{operation}] Connection fault: {e}", transient=True, cause=e) from e


def to_descriptor(account) -> StorageAccountDescriptor:
    """Project an azure.mgmt.storage StorageAccount onto a StorageAccountDescriptor."""
    sku = getattr(account, "sku", None)
    return StorageAccountDescriptor(
        name=account.name,
        location=account.location,
        sku=_value(sku.name) if sku is not None else "",
        kind=_value(account.kind) or "",
        tags=dict(account.tags or {}),
        id=getattr(account, "id", None),
        provisioning_state=_value(getattr(account, "provisioning_state", None)),
    )


def to_key_set(keys) -> StorageAccountKeySet:
    return StorageAccountKeySet(keys=tuple(
        AccountKey(name=k.key_name, value=k.value, permissions=_value(k.permissions))
        for k in (keys or [])
    ))


class AzureResourceClient:
    """
    ResourceClient binding over the Azure Resource Manager SDKs.

    Uses azure-mgmt-resource for provider registration and resource groups, and
    azure-mgmt-storage for everything account-scoped. All SDK exceptions are
    translated by `translate_errors`; long-running operations are polled in
    `poll_interval` slices so a CancellationToken is honoured between polls.
    """

    def __init__(
            self,
            subscription_id: str,
            credential,
            *,
            poll_interval: float = 5.0,
            registration_timeout: float = 300.0,
            resource_client: Optional[ResourceManagementClient] = None,
            storage_client: Optional[StorageManagementClient] = None,
    ):
        self.subscription_id = subscription_id
        self.poll_interval = poll_interval
        self.registration_timeout = registration_timeout
        self.resources = resource_client or ResourceManagementClient(credential, subscription_id)
        self.storage = storage_client or StorageManagementClient(credential, subscription_id)

    @staticmethod
    def factory(subscription_id: str, *, poll_interval: float = 5.0) -> Callable[[Token], "AzureResourceClient"]:
        """
        Returns a callable that binds the management clients to a freshly acquired Token.
        """
        def _build(token: Token) -> "AzureResourceClient":
            return AzureResourceClient(subscription_id, StaticTokenCredential(token), poll_interval=poll_interval)
        return _build

    @staticmethod
    def _guard(cancel: Optional[CancellationToken], label: str) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled(label)

    def _wait(self, poller, cancel: Optional[CancellationToken], label: str):
        while not poller.done():
            self._guard(cancel, label)
            poller.wait(timeout=self.poll_interval)
        return poller.result()

    # ─── Provider / Group ─────────────────────────────────────────────────

    @traced("AzureResourceClient.register_provider")
    def register_provider(self, namespace: str, *, cancel: Optional[CancellationToken] = None) -> str:
        """
        Register `namespace` and wait until ARM reports it as Registered.

        Raises:
            ProviderRegistrationError: If ARM rejects the request or registration does not
                complete within `registration_timeout`.
        """
        label = "AzureResourceClient.register_provider"
        self._guard(cancel, label)
        try:
            with translate_errors(label):
                provider = self.resources.providers.register(namespace)
                state = _value(provider.registration_state) or ""
                deadline = time.monotonic() + self.registration_timeout
                while state.lower() == "registering":
                    self._guard(cancel, label)
                    if time.monotonic() >= deadline:
                        raise ProviderRegistrationError(
                            f"[{label}] Timed out waiting for {namespace} to register (last state: {state})"
                        )
                    time.sleep(self.poll_interval)
                    state = _value(self.resources.providers.get(namespace).registration_state) or ""
        except (AuthenticationError, ProviderRegistrationError):
            raise
        except (RemoteServiceError, NotFoundError) as e:
            # throttling and server faults stay retryable
            if is_transient(e):
                raise
            raise ProviderRegistrationError(f"[{label}] {namespace}: {e.message}", cause=e) from e

        if state.lower() != "registered":
            raise ProviderRegistrationError(f"[{label}] {namespace} registration ended in state {state!r}")
        logger.info(f"[{label}] {namespace} is {state}")
        return state

    @traced("AzureResourceClient.upsert_group")
    def upsert_group(self, group: ResourceGroupDescriptor, *,
                     cancel: Optional[CancellationToken] = None) -> ResourceGroupDescriptor:
        label = "AzureResourceClient.upsert_group"
        self._guard(cancel, label)
        with translate_errors(label):
            rg = self.resources.resource_groups.create_or_update(group.name, ResourceGroup(location=group.location))
        properties = getattr(rg, "properties", None)
        return ResourceGroupDescriptor(
            name=rg.name,
            location=rg.location,
            provisioning_state=_value(getattr(properties, "provisioning_state", None)),
        )

    # ─── Accounts ─────────────────────────────────────────────────────────

    @traced("AzureResourceClient.check_name_availability")
    def check_name_availability(self, name: str, *, cancel: Optional[CancellationToken] = None) -> NameAvailability:
        label = "AzureResourceClient.check_name_availability"
        self._guard(cancel, label)
        with translate_errors(label, name=name):
            result = self.storage.storage_accounts.check_name_availability(
                StorageAccountCheckNameAvailabilityParameters(name=name, type=ACCOUNT_RESOURCE_TYPE)
            )
        return NameAvailability(
            available=bool(result.name_available),
            reason=_value(result.reason),
            message=result.message,
        )

    @traced("AzureResourceClient.upsert_account")
    def upsert_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        """
        Create the account, or update it in place if it already exists in `resource_group`.
        """
        label = "AzureResourceClient.upsert_account"
        self._guard(cancel, label)
        parameters = StorageAccountCreateParameters(
            sku=Sku(name=account.sku),
            kind=account.kind,
            location=account.location,
            tags=dict(account.tags),
        )
        with translate_errors(label, name=account.name):
            poller = self.storage.storage_accounts.begin_create(resource_group, account.name, parameters)
            created = self._wait(poller, cancel, label)
        return to_descriptor(created)

    @traced("AzureResourceClient.get_account")
    def get_account(self, resource_group: str, name: str, *,
                    cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        label = "AzureResourceClient.get_account"
        self._guard(cancel, label)
        with translate_errors(label, name=name):
            return to_descriptor(self.storage.storage_accounts.get_properties(resource_group, name))

    def list_accounts(self, resource_group: Optional[str] = None, *,
                      cancel: Optional[CancellationToken] = None) -> Iterator[StorageAccountDescriptor]:
        """
        Lazily yield accounts; the SDK pager fetches further pages on demand.
        Each call builds a new pager, so iterating a fresh call re-issues the query.
        """
        label = "AzureResourceClient.list_accounts"
        with translate_errors(label):
            if resource_group:
                pages = self.storage.storage_accounts.list_by_resource_group(resource_group)
            else:
                pages = self.storage.storage_accounts.list()
            for item in pages:
                self._guard(cancel, label)
                yield to_descriptor(item)

    @traced("AzureResourceClient.update_account")
    def update_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        """
        Submit sku, kind and tags together; ARM treats omitted tags as "leave unchanged",
        but a full descriptor keeps the request self-describing.
        """
        label = "AzureResourceClient.update_account"
        self._guard(cancel, label)
        parameters = StorageAccountUpdateParameters(
            sku=Sku(name=account.sku),
            kind=account.kind,
            tags=dict(account.tags),
        )
        with translate_errors(label, name=account.name):
            updated = self.storage.storage_accounts.update(resource_group, account.name, parameters)
        return to_descriptor(updated)

    @traced("AzureResourceClient.delete_account")
    def delete_account(self, resource_group: str, name: str, *, cancel: Optional[CancellationToken] = None) -> None:
        """
        ARM answers 204 for a missing account, so existence is probed first to make
        NotFoundError consistent across repeated attempts.
        """
        label = "AzureResourceClient.delete_account"
        self._guard(cancel, label)
        with translate_errors(label, name=name):
            self.storage.storage_accounts.get_properties(resource_group, name)
            self._guard(cancel, label)
            self.storage.storage_accounts.delete(resource_group, name)
        logger.info(f"[{label}] Storage account {name} deleted")

    # ─── Keys ─────────────────────────────────────────────────────────────

    @traced("AzureResourceClient.list_keys")
    def list_keys(self, resource_group: str, name: str, *,
                  cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        label = "AzureResourceClient.list_keys"
        self._guard(cancel, label)
        with translate_errors(label, name=name):
            result = self.storage.storage_accounts.list_keys(resource_group, name)
        return to_key_set(result.keys)

    @traced("AzureResourceClient.regenerate_key")
    def regenerate_key(self, resource_group: str, name: str, key_name: str, *,
                       cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        label = "AzureResourceClient.regenerate_key"
        self._guard(cancel, label)
        with translate_errors(label, name=name):
            result = self.storage.storage_accounts.regenerate_key(
                resource_group, name, StorageAccountRegenerateKeyParameters(key_name=key_name)
            )
        return to_key_set(result.keys)

    # ─── Lifetime ─────────────────────────────────────────────────────────

    def close(self) -> None:
        self.resources.close()
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()
