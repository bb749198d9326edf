import asyncio

import pytest

from storagelib.cloud.errors import RemoteServiceError, is_transient
from storagelib.util import attempt, attempt_async, check_types, generate_account_name, is_storage_account
from storagelib.util.fileio import FileIO
from storagelib.util.sanitization import Sanitization


# ─── Sanitization ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("StorageSample", "storagesample"),
    ("my-Storage_acct.01", "mystorageacct01"),
    ("9lives", "s9lives"),
    ("a", "a00"),
    ("", "s00"),
    ("x" * 40, "x" * 24),
])
def test_storage_account_sanitization(raw, expected):
    assert Sanitization.storage_account(raw) == expected
    assert is_storage_account(Sanitization.storage_account(raw))


def test_storage_account_rejects_non_strings(non_string_keys):
    for value in non_string_keys:
        with pytest.raises(TypeError):
            Sanitization.storage_account(value)


@pytest.mark.parametrize("prefix", ["storagesample", "Some Very Long Prefix For Accounts", ""])
def test_generated_names_are_valid_and_fresh(prefix):
    first, second = generate_account_name(prefix), generate_account_name(prefix)

    assert is_storage_account(first)
    assert first != second


# ─── Retry ────────────────────────────────────────────────────────────────────

def flaky(failures, error):
    state = {"calls": 0}

    def fn():
        state["calls"] += 1
        if state["calls"] <= failures:
            raise error
        return "ok"
    return fn, state


def test_attempt_retries_only_matching_errors():
    transient = RemoteServiceError("busy", status_code=503, transient=True)
    fn, state = flaky(2, transient)
    sleeps = []

    assert attempt(fn, retries=3, backoff_base=2, retry_on=is_transient, sleep=sleeps.append) == "ok"
    assert state["calls"] == 3
    assert sleeps == [1, 2]


def test_attempt_gives_up_after_last_try():
    fn, state = flaky(5, RemoteServiceError("busy", transient=True))

    with pytest.raises(RemoteServiceError):
        attempt(fn, retries=2, retry_on=is_transient)
    assert state["calls"] == 2


def test_attempt_is_fail_fast_by_default():
    fn, state = flaky(1, RemoteServiceError("busy", transient=True))

    with pytest.raises(RemoteServiceError):
        attempt(fn, retries=3)
    assert state["calls"] == 1


def test_attempt_requires_callable():
    with pytest.raises(TypeError):
        attempt("not callable")


def test_attempt_async_retries():
    state = {"calls": 0}

    async def fn():
        state["calls"] += 1
        if state["calls"] == 1:
            raise RemoteServiceError("busy", transient=True)
        return "ok"

    assert asyncio.run(attempt_async(fn, retries=2, retry_on=is_transient)) == "ok"
    assert state["calls"] == 2


def test_check_types(sample_tuple):
    assert check_types("x", str) == "x"
    assert check_types([1, 2], int) == [1, 2]
    with pytest.raises(TypeError):
        check_types(list(sample_tuple), (int, float))


# ─── FileIO ───────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("name", ["settings.toml", "settings.json", "settings.yaml", "settings.yml", "local.env"])
def test_fileio_write_then_read(tmp_path, name):
    data = {"subscription_id": "sub", "location": "westus"}
    path = FileIO.write(tmp_path / name, data)

    assert FileIO.read(path) == data


def test_fileio_rejects_unknown_extension(tmp_path):
    with pytest.raises(ValueError):
        FileIO.resolve_extension(tmp_path / "settings.ini")


def test_fileio_missing_file(missing_file_path):
    with pytest.raises(FileNotFoundError):
        FileIO.read(missing_file_path)


def test_parse_env_handles_comments_and_quotes():
    text = '# comment\nexport A="1"\nB=\'two\'\n\nNOEQUALS\nC = three\n'

    assert FileIO.parse_env(text) == {"A": "1", "B": "two", "C": "three"}
