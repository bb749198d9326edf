import re
import signal

import pytest
import toml
from click.testing import CliRunner

from storagelib.cli import _cancel_on_interrupt, cli
from storagelib.cloud.errors import OperationCancelledError
from storagelib.cloud.memory import InMemoryResourceClient
from storagelib.cloud.models import CancellationToken


@pytest.fixture
def invoke(tmp_path):
    """
    Returns a helper that runs the CLI against settings and logs under tmp_path.

    Example:
        def test_help(invoke):
            assert invoke("--help").exit_code == 0
    """
    runner = CliRunner()
    base = [
        "--config", str(tmp_path / "storagelib_settings.toml"),
        "--env-file", str(tmp_path / "test.env"),
        "--log-dir", str(tmp_path / "logs"),
        "--quiet-console",
    ]

    def _invoke(*args):
        return runner.invoke(cli, base + list(args))
    return _invoke


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "storagelib_settings.toml"
    path.write_text(toml.dumps({"storagelib": {
        "subscription_id": "11111111-2222-3333-4444-555555555555",
        "resource_group": "CliGroup",
        "credential": {"tenant_id": "t", "client_id": "c", "client_secret": "hunter2"},
    }}), encoding="utf-8")
    return path


def test_help_lists_commands(invoke):
    result = invoke("--help")

    assert result.exit_code == 0
    for command in ("run", "check-name", "generate-name", "show-config"):
        assert command in result.output


def test_dry_run_completes(invoke):
    result = invoke("run", "--dry-run", "--account-name", "storagesample1a2b3c4d")

    assert result.exit_code == 0, result.output
    assert "Storage account created with name storagesample1a2b3c4d" in result.output
    assert "Account type on storage account updated to Standard_LRS" in result.output
    assert "Storage account storagesample1a2b3c4d deleted" in result.output
    assert "Completed: 8 step(s), final state Completed" in result.output


def test_dry_run_async_completes(invoke):
    result = invoke("run", "--dry-run", "--async", "--update-sku", "Standard_ZRS")

    assert result.exit_code == 0, result.output
    assert "updated to Standard_ZRS" in result.output


def test_dry_run_with_skipped_registration(invoke):
    result = invoke("run", "--dry-run", "--no-register", "--tag", "env=test", "--tag", "team=ops")

    assert result.exit_code == 0, result.output
    assert re.search(r"register_provider\s+skip", result.output)


def test_failing_step_sets_exit_code(invoke):
    result = invoke("run", "--dry-run", "--key-name", "key9")

    assert result.exit_code == 7
    assert "[rotate_keys]" in result.output


def test_invalid_account_name_is_a_config_error(invoke):
    result = invoke("run", "--dry-run", "--account-name", "Not_Valid!")

    assert result.exit_code == 9
    assert "Invalid storage account name" in result.output


def test_real_run_without_settings_is_a_config_error(invoke):
    result = invoke("run")

    assert result.exit_code == 9
    assert "subscription_id" in result.output


def test_bad_tag_is_a_usage_error(invoke):
    result = invoke("run", "--dry-run", "--tag", "novalue")

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_check_name_available(invoke):
    result = invoke("check-name", "--dry-run", "storagesample1a2b3c4d")

    assert result.exit_code == 0
    assert "storagesample1a2b3c4d is available" in result.output


def test_check_name_invalid(invoke):
    result = invoke("check-name", "--dry-run", "Bad-Name")

    assert result.exit_code == 5
    assert "AccountNameInvalid" in result.output


def test_check_name_closes_its_client(invoke, monkeypatch):
    closed = []
    monkeypatch.setattr(InMemoryResourceClient, "close", lambda self: closed.append(self))

    result = invoke("check-name", "--dry-run", "storagesample1a2b3c4d")

    assert result.exit_code == 0
    assert len(closed) == 1


def test_generate_name(invoke):
    result = invoke("generate-name", "--prefix", "Demo")

    assert result.exit_code == 0
    assert re.fullmatch(r"demo[0-9a-f]{8}", result.output.strip())


def test_show_config_masks_secret(invoke, settings_file):
    result = invoke("show-config")

    assert result.exit_code == 0, result.output
    rendered = toml.loads(result.output)["storagelib"]
    assert rendered["resource_group"] == "CliGroup"
    assert rendered["credential"]["client_secret"] == "****"
    assert "hunter2" not in result.output


def test_show_config_reports_bad_settings(invoke, tmp_path):
    (tmp_path / "storagelib_settings.toml").write_text('[storagelib]\nregion = "x"\n')

    result = invoke("show-config")

    assert result.exit_code == 9
    assert "region" in result.output


def test_log_file_is_written(invoke, tmp_path):
    invoke("run", "--dry-run")

    logs = list((tmp_path / "logs").glob("*.log"))
    assert len(logs) == 1
    assert "Storage account created with name" in logs[0].read_text(encoding="utf-8")


# ─── Interrupts ───────────────────────────────────────────────────────────────

def test_first_interrupt_cancels_and_second_is_restored():
    cancel = CancellationToken()
    before = signal.getsignal(signal.SIGINT)

    with _cancel_on_interrupt(cancel):
        handler = signal.getsignal(signal.SIGINT)
        assert handler is not before
        handler(signal.SIGINT, None)
        assert cancel.cancelled
        assert signal.getsignal(signal.SIGINT) is not handler

    assert signal.getsignal(signal.SIGINT) is before


def test_interrupt_mid_run_exits_as_cancelled(invoke, monkeypatch):
    upsert_group = InMemoryResourceClient.upsert_group

    def interrupted(self, group, *, cancel=None):
        signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
        return upsert_group(self, group, cancel=cancel)

    monkeypatch.setattr(InMemoryResourceClient, "upsert_group", interrupted)

    result = invoke("run", "--dry-run")

    assert result.exit_code == OperationCancelledError.exit_code
    assert "upsert_group" in result.output
    assert "Cancelled: interrupted" in result.output
