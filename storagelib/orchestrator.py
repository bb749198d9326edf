"""
Storage-account lifecycle orchestrator.

The eight-step workflow is written once, as a generator that yields `Call`
records instead of talking to collaborators directly. Two drivers execute those
calls: `run` invokes them in the calling thread, `run_async` awaits them. Results
are sent back into the generator and failures are thrown into it, so error
handling (name-collision probing, tolerant delete) lives in one place and the
step ordering is identical in both modes.
"""

import dataclasses
import inspect
import logging
from typing import Any, Callable, Generator, NamedTuple, Optional, Tuple

from storagelib.cloud.errors import (
    AuthenticationError,
    NameUnavailableError,
    NotFoundError,
    RemoteServiceError,
    is_transient,
)
from storagelib.cloud.models import (
    STEP_STATES,
    CancellationToken,
    RunResult,
    RunState,
    StepOutcome,
    Token,
)
from storagelib.context.config import Config, RunConfig
from storagelib.context.logger import log_func
from storagelib.util.error_handling import attempt, attempt_async

logger = logging.getLogger(__name__)

SKIPPED = object()


class Call(NamedTuple):
    """One remote operation requested by the workflow."""

    op: str
    args: Tuple[Any, ...] = ()
    target: str = "client"
    drain: bool = False


class _Session:
    """Per-run state shared between the workflow and its driver."""

    def __init__(self, config: RunConfig, cancel: CancellationToken):
        self.config = config
        self.cancel = cancel
        self.client = None


Workflow = Generator[Call, Any, RunResult]


class LifecycleOrchestrator:
    """
    Runs the fixed storage-account lifecycle against a credential provider and a
    resource client.

    Args:
        credentials: A CredentialProvider (blocking `acquire`) or its async counterpart.
        client_factory (Callable[[Token], client]): Binds a ResourceClient (or
            AsyncResourceClient for `run_async`) to the token from the authenticate step.
        reporter (Callable[[str], None]): Optional console sink for progress lines.
    """

    def __init__(self, credentials, client_factory: Callable[[Token], Any], *,
                 reporter: Optional[Callable[[str], None]] = None):
        self.credentials = credentials
        self.client_factory = client_factory
        self.reporter = reporter

    # ─── Drivers ──────────────────────────────────────────────────────────

    def run(self, config: RunConfig, *, cancel: Optional[CancellationToken] = None) -> RunResult:
        """
        Execute the lifecycle, blocking on each remote call.

        Returns:
            RunResult: state Completed, or Failed with `error` naming the step and cause.

        Raises:
            ConfigError: If `config` is invalid; nothing remote is attempted.
        """
        session = self._session(config, cancel)
        workflow = self._workflow(session, RunResult())
        reply, error = None, None
        try:
            while True:
                try:
                    call = workflow.throw(error) if error is not None else workflow.send(reply)
                except StopIteration as stop:
                    return stop.value
                reply, error = None, None
                try:
                    reply = attempt(
                        lambda: self._invoke(session, call),
                        retries=session.config.retries,
                        backoff_base=session.config.backoff_base,
                        retry_on=is_transient,
                        label=call.op,
                    )
                except Exception as e:
                    error = e
        finally:
            self._release(session)

    async def run_async(self, config: RunConfig, *, cancel: Optional[CancellationToken] = None) -> RunResult:
        """
        Execute the lifecycle, awaiting each remote call. Collaborators may be native
        coroutines or blocking callables; blocking ones run inline.
        """
        session = self._session(config, cancel)
        workflow = self._workflow(session, RunResult())
        reply, error = None, None
        try:
            while True:
                try:
                    call = workflow.throw(error) if error is not None else workflow.send(reply)
                except StopIteration as stop:
                    return stop.value
                reply, error = None, None
                try:
                    reply = await attempt_async(
                        lambda: self._invoke_async(session, call),
                        retries=session.config.retries,
                        backoff_base=session.config.backoff_base,
                        retry_on=is_transient,
                        label=call.op,
                    )
                except Exception as e:
                    error = e
        finally:
            pending = self._release(session)
            if inspect.isawaitable(pending):
                await pending

    @staticmethod
    def _release(session: _Session) -> Any:
        """Close the client bound during authentication, if it owns transports."""
        client, session.client = session.client, None
        close = getattr(client, "close", None)
        if not callable(close):
            return None
        logger.debug(f"[LifecycleOrchestrator] Closing {type(client).__name__}")
        return close()

    def _session(self, config: RunConfig, cancel: Optional[CancellationToken]) -> _Session:
        Config.validate(config, require_credentials=False)
        return _Session(config.resolve(), cancel or CancellationToken())

    def _target(self, session: _Session, call: Call):
        if call.target == "credentials":
            return self.credentials
        if session.client is None:
            raise AuthenticationError(f"[LifecycleOrchestrator] {call.op} requested before authentication")
        return session.client

    def _invoke(self, session: _Session, call: Call) -> Any:
        session.cancel.raise_if_cancelled(call.op)
        with log_func(call.op):
            value = getattr(self._target(session, call), call.op)(*call.args, cancel=session.cancel)
            if call.drain:
                value = list(value)
        return value

    async def _invoke_async(self, session: _Session, call: Call) -> Any:
        session.cancel.raise_if_cancelled(call.op)
        with log_func(call.op):
            value = getattr(self._target(session, call), call.op)(*call.args, cancel=session.cancel)
            if call.drain:
                if hasattr(value, "__aiter__"):
                    return [item async for item in value]
                return list(value)
            if inspect.isawaitable(value):
                value = await value
        return value

    # ─── Workflow ─────────────────────────────────────────────────────────

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.reporter is not None:
            self.reporter(message)

    def _workflow(self, session: _Session, result: RunResult) -> Workflow:
        for step, state in STEP_STATES:
            handler = getattr(self, f"_step_{step.value}")
            logger.debug(f"[LifecycleOrchestrator] → {step.value}")
            try:
                detail = yield from handler(session, result)
            except Exception as e:
                result.fail(step, e)
                logger.error(f"[LifecycleOrchestrator] Step {step.value} failed: {e}")
                self._report(f"[{step.value}] failed: {e}")
                return result

            if detail is SKIPPED:
                result.steps.append(StepOutcome(step=step, ok=True, skipped=True, detail="skipped"))
            else:
                result.steps.append(StepOutcome(step=step, ok=True, detail=detail or ""))
            result.advance(state)

        result.advance(RunState.COMPLETED)
        self._report(f"Run completed for storage account {session.config.account_name}")
        return result

    def _step_authenticate(self, session: _Session, result: RunResult):
        token = yield Call("acquire", target="credentials")
        if token is None or not token:
            raise AuthenticationError("[LifecycleOrchestrator] Failed to obtain the JWT token")
        session.client = self.client_factory(token)
        return "token acquired"

    def _step_register_provider(self, session: _Session, result: RunResult):
        cfg = session.config
        if not cfg.register_provider:
            return SKIPPED
        self._report(f"Registering resource provider {cfg.provider_namespace}...")
        state = yield Call("register_provider", (cfg.provider_namespace,))
        return f"{cfg.provider_namespace} {state}"

    def _step_upsert_group(self, session: _Session, result: RunResult):
        cfg = session.config
        self._report(f"Creating or updating resource group {cfg.resource_group} in {cfg.location}...")
        result.group = yield Call("upsert_group", (cfg.group_descriptor(),))
        return f"resource group {result.group.name} ready"

    def _step_create_account(self, session: _Session, result: RunResult):
        cfg = session.config
        desired = cfg.account_descriptor()

        if cfg.check_name_availability:
            availability = yield Call("check_name_availability", (desired.name,))
            if not availability.available:
                if availability.reason == "AccountNameInvalid":
                    raise NameUnavailableError(
                        f"[LifecycleOrchestrator] {availability.message or desired.name + ' is not a valid name'}",
                        name=desired.name,
                        reason=availability.reason,
                    )
                try:
                    yield Call("get_account", (cfg.resource_group, desired.name))
                except NotFoundError as e:
                    raise NameUnavailableError(
                        f"[LifecycleOrchestrator] {availability.message or desired.name + ' is already taken'}",
                        name=desired.name,
                        reason=availability.reason,
                        cause=e,
                    ) from e
                logger.info(f"[LifecycleOrchestrator] {desired.name} already exists in {cfg.resource_group}; "
                            "create will update it in place")

        self._report("Creating a storage account...")
        result.created = yield Call("upsert_account", (cfg.resource_group, desired))
        self._report(f"Storage account created with name {result.created.name}")
        return f"account {result.created.name} ({result.created.sku}, {result.created.kind})"

    def _step_inspect(self, session: _Session, result: RunResult):
        cfg = session.config
        result.inspected = yield Call("get_account", (cfg.resource_group, cfg.account_name))
        result.group_accounts = yield Call("list_accounts", (cfg.resource_group,), drain=True)
        result.subscription_accounts = yield Call("list_accounts", (None,), drain=True)
        return (f"{len(result.group_accounts)} account(s) in {cfg.resource_group}, "
                f"{len(result.subscription_accounts)} in subscription")

    def _step_rotate_keys(self, session: _Session, result: RunResult):
        cfg = session.config
        result.initial_keys = yield Call("list_keys", (cfg.resource_group, cfg.account_name))
        self._report(f"Regenerating {cfg.key_name} for {cfg.account_name}...")
        refreshed = yield Call("regenerate_key", (cfg.resource_group, cfg.account_name, cfg.key_name))
        if len(refreshed) != len(result.initial_keys):
            raise RemoteServiceError(
                f"[LifecycleOrchestrator] Key count changed from {len(result.initial_keys)} "
                f"to {len(refreshed)} after regenerating {cfg.key_name}"
            )
        result.keys = refreshed
        return f"{cfg.key_name} regenerated ({len(refreshed)} keys)"

    def _step_update_account(self, session: _Session, result: RunResult):
        cfg = session.config
        self._report("Updating storage account...")
        # Re-read so a full resubmission carries every current attribute.
        current = yield Call("get_account", (cfg.resource_group, cfg.account_name))
        result.account_before_update = current
        desired = dataclasses.replace(current, sku=cfg.updated_sku)
        result.account = yield Call("update_account", (cfg.resource_group, desired))
        self._report(f"Account type on storage account updated to {result.account.sku}")
        return f"sku {current.sku} -> {result.account.sku}"

    def _step_delete_account(self, session: _Session, result: RunResult):
        cfg = session.config
        self._report("Deleting a storage account...")
        try:
            yield Call("delete_account", (cfg.resource_group, cfg.account_name))
        except NotFoundError:
            if not cfg.tolerate_missing_on_delete:
                raise
            logger.warning(f"[LifecycleOrchestrator] {cfg.account_name} was already gone; treating delete as done")
            self._report(f"Storage account {cfg.account_name} already absent")
            result.deleted = False
            return "already absent"
        result.deleted = True
        self._report(f"Storage account {cfg.account_name} deleted")
        return f"account {cfg.account_name} deleted"


def build_orchestrator(config: RunConfig, *, reporter: Optional[Callable[[str], None]] = None,
                       use_async: bool = False) -> LifecycleOrchestrator:
    """
    Wire the Azure bindings described by `config`: the credential provider chosen by
    `config.credential.mode` and AzureResourceClient bound to the acquired token.
    With `use_async`, both are wrapped in the thread-offloading adapters.
    """
    from storagelib.cloud.aio import ThreadedCredentialProvider, ThreadedResourceClient
    from storagelib.cloud.client import AzureResourceClient
    from storagelib.cloud.credentials import build_credential_provider

    credentials = build_credential_provider(config.credential)
    factory = AzureResourceClient.factory(config.subscription_id, poll_interval=config.poll_interval)
    if use_async:
        return LifecycleOrchestrator(ThreadedCredentialProvider(credentials), ThreadedResourceClient.factory(factory),
                                     reporter=reporter)
    return LifecycleOrchestrator(credentials, factory, reporter=reporter)
