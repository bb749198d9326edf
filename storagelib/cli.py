# storagelib/cli.py
import asyncio
import dataclasses
import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Tuple

import click

import storagelib.context._globals as _globals
from storagelib.cloud.aio import ThreadedCredentialProvider, ThreadedResourceClient
from storagelib.cloud.errors import ConfigError, NameUnavailableError, OperationCancelledError, StorageLibError
from storagelib.cloud.memory import InMemoryCredentialProvider, InMemoryResourceClient
from storagelib.cloud.models import CancellationToken
from storagelib.context.config import Config, RunConfig
from storagelib.context.logger import Logger
from storagelib.orchestrator import LifecycleOrchestrator, build_orchestrator
from storagelib.util.sanitization import Sanitization

logger = logging.getLogger(__name__)

DRY_RUN_SUBSCRIPTION = "00000000-0000-0000-0000-000000000000"


def _parse_tags(ctx, param, values: Tuple[str, ...]) -> Optional[dict]:
    if not values:
        return None
    tags = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Tags must look like KEY=VALUE → {item}")
        tags[key.strip()] = value.strip()
    return tags


def _exit_with(ctx: click.Context, error: BaseException, *, label: Optional[str] = None,
               pause: bool = False) -> None:
    """Print `error` and leave with its exit code (1 for anything outside the taxonomy)."""
    message = f"[{label}] {error}" if label else str(error)
    click.echo(f"Error: {message}", err=True)
    if pause:
        click.pause("Press any key to exit...")
    ctx.exit(error.exit_code if isinstance(error, StorageLibError) else 1)


def _load(ctx: click.Context, overrides: Optional[dict] = None, *, dry_run: bool = False) -> RunConfig:
    try:
        cfg = Config.load(ctx.obj["config_path"], env_file=ctx.obj["env_file"], overrides=overrides)
    except ConfigError as e:
        _exit_with(ctx, e)
    if dry_run and cfg.subscription_id in _globals.DENY_LIST:
        cfg = dataclasses.replace(cfg, subscription_id=DRY_RUN_SUBSCRIPTION)
    return cfg


@contextmanager
def _cancel_on_interrupt(cancel: CancellationToken):
    """
    Route the first Ctrl-C into `cancel` so the run stops at its next cancellation
    check. The previous handler is restored, so a second Ctrl-C interrupts outright.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.getsignal(signal.SIGINT)
    if not callable(previous) and previous not in (signal.SIG_IGN, signal.SIG_DFL):
        previous = signal.default_int_handler

    def _handler(signum, frame):
        logger.warning(f"[cli] Received signal {signum}, cancelling the run")
        cancel.cancel("interrupted")
        signal.signal(signal.SIGINT, previous)

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _dry_run_orchestrator(cfg: RunConfig, *, use_async: bool, reporter) -> LifecycleOrchestrator:
    client = InMemoryResourceClient(cfg.subscription_id)
    credentials = InMemoryCredentialProvider()
    if use_async:
        return LifecycleOrchestrator(ThreadedCredentialProvider(credentials),
                                     ThreadedResourceClient.factory(client.factory()), reporter=reporter)
    return LifecycleOrchestrator(credentials, client.factory(), reporter=reporter)


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Settings file (TOML, JSON or YAML). Defaults to ./storagelib_settings.toml.")
@click.option("--env-file", type=click.Path(path_type=Path), default=None,
              help=".env file layered under the process environment. Defaults to ./.env.")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-dir", type=click.Path(path_type=Path), default=_globals.global_log_dir,
              show_default="./logs")
@click.option("--quiet-console", is_flag=True, help="Only write logs to the log file.")
@click.pass_context
def cli(ctx, config_path, env_file, log_level, log_dir, quiet_console):
    """Provision, inspect, rotate, update and remove an Azure storage account."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["env_file"] = env_file
    Logger.init_logger(log_dir=log_dir, level=log_level.upper(), pretty_console=not quiet_console)
    Logger.intercept_stdlib()


@cli.command()
@click.option("--group", "resource_group", default=None, help="Resource group to create or reuse.")
@click.option("--account-name", default=None, help="Storage account name; generated when omitted.")
@click.option("--location", default=None)
@click.option("--sku", default=None, help="SKU used at creation, e.g. Standard_GRS.")
@click.option("--kind", default=None, help="Account kind, e.g. StorageV2.")
@click.option("--tag", "tags", multiple=True, callback=_parse_tags, help="KEY=VALUE, repeatable.")
@click.option("--update-sku", "updated_sku", default=None, help="SKU applied by the update step.")
@click.option("--key-name", default=None, help="Key regenerated by the rotation step.")
@click.option("--no-register", is_flag=True, help="Skip resource-provider registration.")
@click.option("--strict-delete", is_flag=True, help="Fail if the account is already gone at delete time.")
@click.option("--retries", type=int, default=None, help="Attempts per remote call for transient failures.")
@click.option("--backoff-base", type=float, default=None, help="Sleep base ** (attempt - 1) seconds between attempts.")
@click.option("--dry-run", is_flag=True, help="Run against the in-memory cloud.")
@click.option("--async", "use_async", is_flag=True, help="Drive the workflow with asyncio.")
@click.option("--pause-on-error", is_flag=True, help="Wait for a keypress before exiting on failure.")
@click.pass_context
def run(ctx, resource_group, account_name, location, sku, kind, tags, updated_sku, key_name, no_register,
        strict_delete, retries, backoff_base, dry_run, use_async, pause_on_error):
    """Runs the full storage-account lifecycle once."""
    overrides = {
        "resource_group": resource_group,
        "account_name": account_name,
        "location": location,
        "sku": sku,
        "kind": kind,
        "tags": tags,
        "updated_sku": updated_sku,
        "key_name": key_name,
        "retries": retries,
        "backoff_base": backoff_base,
        "register_provider": False if no_register else None,
        "tolerate_missing_on_delete": False if strict_delete else None,
    }
    cfg = _load(ctx, overrides, dry_run=dry_run)

    try:
        if dry_run:
            orchestrator = _dry_run_orchestrator(cfg, use_async=use_async, reporter=click.echo)
        else:
            Config.validate(cfg)
            orchestrator = build_orchestrator(cfg, reporter=click.echo, use_async=use_async)
    except StorageLibError as e:
        _exit_with(ctx, e, pause=pause_on_error)

    cancel = CancellationToken()
    try:
        with _cancel_on_interrupt(cancel):
            if use_async:
                result = asyncio.run(orchestrator.run_async(cfg, cancel=cancel))
            else:
                result = orchestrator.run(cfg, cancel=cancel)
    except ConfigError as e:
        _exit_with(ctx, e, pause=pause_on_error)
    except KeyboardInterrupt:
        _exit_with(ctx, OperationCancelledError("Interrupted by user"), pause=pause_on_error)

    for outcome in result.steps:
        mark = "skip" if outcome.skipped else ("ok" if outcome.ok else "FAIL")
        click.echo(f"  {outcome.step.value:<18} {mark:<5} {outcome.detail}")

    if result.error is not None:
        _exit_with(ctx, result.error.cause, label=result.error.step.value, pause=pause_on_error)

    click.echo(f"Completed: {len(result.completed_steps())} step(s), final state {result.state.value}")


@cli.command("check-name")
@click.argument("name")
@click.option("--dry-run", is_flag=True, help="Query the in-memory cloud.")
@click.pass_context
def check_name(ctx, name, dry_run):
    """Checks whether NAME is free in the global storage-account namespace."""
    cfg = _load(ctx, dry_run=dry_run)
    cancel = CancellationToken()
    try:
        if dry_run:
            credentials = InMemoryCredentialProvider()
            factory = InMemoryResourceClient(cfg.subscription_id).factory()
        else:
            from storagelib.cloud.client import AzureResourceClient
            from storagelib.cloud.credentials import build_credential_provider

            Config.validate(cfg)
            credentials = build_credential_provider(cfg.credential)
            factory = AzureResourceClient.factory(cfg.subscription_id, poll_interval=cfg.poll_interval)
        with factory(credentials.acquire(cancel=cancel)) as client:
            availability = client.check_name_availability(name, cancel=cancel)
    except StorageLibError as e:
        _exit_with(ctx, e)

    if availability.available:
        click.echo(f"{name} is available")
        return
    detail = f": {availability.message}" if availability.message else ""
    click.echo(f"{name} is unavailable ({availability.reason}){detail}")
    ctx.exit(NameUnavailableError.exit_code)


@cli.command("generate-name")
@click.option("--prefix", default=_globals.DEFAULT_ACCOUNT_PREFIX, show_default=True)
def generate_name(prefix):
    """Prints a fresh, valid storage account name."""
    click.echo(Sanitization.generate_account_name(prefix))


@cli.command("show-config")
@click.option("--show-secrets", is_flag=True, help="Print the client secret unmasked.")
@click.pass_context
def show_config(ctx, show_secrets):
    """Prints the resolved configuration as TOML."""
    cfg = _load(ctx)
    click.echo(Config.dump(cfg, mask_secrets=not show_secrets), nl=False)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
