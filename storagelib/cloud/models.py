"""
Plain value types passed between the orchestrator and its collaborators.

Descriptors are frozen: every step that changes an account produces a new
descriptor instead of mutating the one it was handed.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from storagelib.cloud.errors import OperationCancelledError, StorageLibError


@dataclass(frozen=True)
class Identity:
    """Service principal credentials for a single tenant."""

    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)


@dataclass(frozen=True)
class Token:
    """Bearer token handed out by a credential provider."""

    value: str = field(repr=False)
    expires_on: int = 0

    def __bool__(self) -> bool:
        return bool(self.value and self.value.strip())


@dataclass(frozen=True)
class ResourceGroupDescriptor:
    name: str
    location: str
    provisioning_state: Optional[str] = None


@dataclass(frozen=True)
class StorageAccountDescriptor:
    """
    Desired or observed shape of a storage account.

    Only `name`, `location`, `sku`, `kind` and `tags` are submitted on create/update;
    `id` and `provisioning_state` are read back from the service.
    """

    name: str
    location: str
    sku: str
    kind: str
    tags: Dict[str, str] = field(default_factory=dict)
    id: Optional[str] = None
    provisioning_state: Optional[str] = None

    def same_shape(self, other: "StorageAccountDescriptor") -> bool:
        """
        True when location, sku, kind and tags match. Location is compared
        case-insensitively and without spaces ("West US" == "westus").
        """
        def _loc(value: str) -> str:
            return (value or "").replace(" ", "").lower()

        return (
            _loc(self.location) == _loc(other.location)
            and self.sku == other.sku
            and self.kind == other.kind
            and dict(self.tags) == dict(other.tags)
        )


@dataclass(frozen=True)
class AccountKey:
    name: str
    value: str = field(repr=False)
    permissions: Optional[str] = None


@dataclass(frozen=True)
class StorageAccountKeySet:
    """Ordered, fixed-size set of named account keys."""

    keys: Tuple[AccountKey, ...] = ()

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[AccountKey]:
        return iter(self.keys)

    def names(self) -> List[str]:
        return [k.name for k in self.keys]

    def get(self, name: str) -> AccountKey:
        for key in self.keys:
            if key.name.lower() == name.lower():
                return key
        raise KeyError(name)


@dataclass(frozen=True)
class NameAvailability:
    available: bool
    reason: Optional[str] = None
    message: Optional[str] = None


class CancellationToken:
    """
    Cooperative cancellation flag threaded through every remote call.

    Thread-safe; `cancel()` may be called from a signal handler or another thread
    while a run is blocked on a remote call.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, label: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelledError(f"[{label}] Cancelled: {self.reason}")


class Step(str, Enum):
    AUTHENTICATE = "authenticate"
    REGISTER_PROVIDER = "register_provider"
    UPSERT_GROUP = "upsert_group"
    CREATE_ACCOUNT = "create_account"
    INSPECT = "inspect"
    ROTATE_KEYS = "rotate_keys"
    UPDATE_ACCOUNT = "update_account"
    DELETE_ACCOUNT = "delete_account"


class RunState(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED = "Authenticated"
    PROVIDER_REGISTERED = "ProviderRegistered"
    GROUP_READY = "GroupReady"
    ACCOUNT_CREATED = "AccountCreated"
    INSPECTED = "Inspected"
    KEYS_ROTATED = "KeysRotated"
    UPDATED = "Updated"
    DELETED = "Deleted"
    COMPLETED = "Completed"
    FAILED = "Failed"


# State reached once each step succeeds; the order of this table is the run order.
STEP_STATES: Tuple[Tuple[Step, RunState], ...] = (
    (Step.AUTHENTICATE, RunState.AUTHENTICATED),
    (Step.REGISTER_PROVIDER, RunState.PROVIDER_REGISTERED),
    (Step.UPSERT_GROUP, RunState.GROUP_READY),
    (Step.CREATE_ACCOUNT, RunState.ACCOUNT_CREATED),
    (Step.INSPECT, RunState.INSPECTED),
    (Step.ROTATE_KEYS, RunState.KEYS_ROTATED),
    (Step.UPDATE_ACCOUNT, RunState.UPDATED),
    (Step.DELETE_ACCOUNT, RunState.DELETED),
)

STATE_ORDER: Tuple[RunState, ...] = (
    (RunState.UNAUTHENTICATED,)
    + tuple(state for _, state in STEP_STATES)
    + (RunState.COMPLETED,)
)


@dataclass
class StepOutcome:
    step: Step
    ok: bool
    skipped: bool = False
    detail: str = ""


@dataclass
class StepFailure:
    step: Step
    cause: BaseException

    def __str__(self) -> str:
        return f"[{self.step.value}] {self.cause}"


@dataclass
class RunResult:
    """
    Summary of one lifecycle run.

    `created` is what the create-or-update call returned, `inspected` the properties
    read back right after, `account_before_update` the fresh read the update was
    merged onto, and `account` the final state after the update. `keys` is the key
    set as of completion. On failure, `error` names the failing step and the fields
    for later steps stay at their defaults.
    """

    state: RunState = RunState.UNAUTHENTICATED
    steps: List[StepOutcome] = field(default_factory=list)
    group: Optional[ResourceGroupDescriptor] = None
    created: Optional[StorageAccountDescriptor] = None
    inspected: Optional[StorageAccountDescriptor] = None
    account_before_update: Optional[StorageAccountDescriptor] = None
    account: Optional[StorageAccountDescriptor] = None
    group_accounts: List[StorageAccountDescriptor] = field(default_factory=list)
    subscription_accounts: List[StorageAccountDescriptor] = field(default_factory=list)
    initial_keys: Optional[StorageAccountKeySet] = None
    keys: Optional[StorageAccountKeySet] = None
    deleted: bool = False
    error: Optional[StepFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    def completed_steps(self) -> List[Step]:
        return [o.step for o in self.steps if o.ok]

    def advance(self, state: RunState) -> None:
        """Move forward along STATE_ORDER; any backwards move is a programming error."""
        if self.state is RunState.FAILED:
            raise RuntimeError(f"[RunResult.advance] Run already failed; cannot enter {state.value}")
        if STATE_ORDER.index(state) <= STATE_ORDER.index(self.state):
            raise RuntimeError(
                f"[RunResult.advance] Illegal transition {self.state.value} -> {state.value}"
            )
        self.state = state

    def fail(self, step: Step, cause: BaseException) -> None:
        self.error = StepFailure(step=step, cause=cause)
        self.steps.append(StepOutcome(step=step, ok=False, detail=str(cause)))
        self.state = RunState.FAILED

    def raise_for_error(self) -> None:
        if self.error is None:
            return
        cause = self.error.cause
        if isinstance(cause, StorageLibError):
            raise cause
        raise StorageLibError(str(self.error), cause=cause) from cause
