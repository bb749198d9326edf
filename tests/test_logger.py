import asyncio
import logging

import pytest

from storagelib.context.decorator import traced
from storagelib.context.logger import Logger, current_func, log_func


def test_log_func_builds_a_dotted_stack():
    assert current_func() == ""
    with log_func("run"):
        with log_func("create_account"):
            assert current_func() == "run.create_account"
        assert current_func() == "run"
    assert current_func() == ""


def test_init_logger_writes_session_file(tmp_path):
    Logger.init_logger(log_dir=tmp_path, label="session", pretty_console=False, level="DEBUG")
    Logger.intercept_stdlib()

    with log_func("orchestrator"):
        logging.getLogger("storagelib.test").info("hello from stdlib")

    path = Logger.log_path()
    assert path.parent == tmp_path
    assert path.name.endswith("__session.log")
    text = path.read_text(encoding="utf-8")
    assert "hello from stdlib" in text
    assert "orchestrator" in text


def test_init_logger_is_idempotent(tmp_path):
    first = Logger.init_logger(log_dir=tmp_path, pretty_console=False)
    second = Logger.init_logger(log_dir=tmp_path / "other", pretty_console=False)

    assert first is second
    assert not (tmp_path / "other").exists()


def test_get_loguru_requires_init():
    with pytest.raises(RuntimeError):
        Logger.get_loguru()


def test_reset_detaches_stdlib_handler(tmp_path):
    Logger.init_logger(log_dir=None, pretty_console=False)
    Logger.intercept_stdlib()
    Logger.reset()

    assert Logger.log_path() is None
    assert not any(type(h).__name__ == "InterceptHandler" for h in logging.root.handlers)


def test_traced_pushes_label_and_reraises():
    seen = []

    @traced("Client.op")
    def op():
        seen.append(current_func())
        raise ValueError("boom")

    with pytest.raises(ValueError):
        op()
    assert seen == ["Client.op"]


def test_traced_supports_coroutines():
    @traced()
    async def fetch(value):
        return current_func(), value

    name, value = asyncio.run(fetch(3))

    assert name.endswith("fetch")
    assert value == 3


def test_sdk_loggers_are_held_at_warning(tmp_path):
    before = logging.getLogger("azure").level
    Logger.init_logger(log_dir=tmp_path, label="sdk", pretty_console=False, level="INFO")
    Logger.intercept_stdlib()

    logging.getLogger("azure.core.pipeline.policies.http_logging_policy").info("Request URL: 'https://x'")
    logging.getLogger("azure.core").warning("throttled")

    assert logging.getLogger("azure").level == logging.WARNING
    text = Logger.log_path().read_text(encoding="utf-8")
    assert "Request URL" not in text
    assert "throttled" in text

    Logger.reset()
    assert logging.getLogger("azure").level == before


def test_debug_sessions_keep_sdk_logging(tmp_path):
    before = logging.getLogger("azure").level
    Logger.init_logger(log_dir=None, pretty_console=False, level="DEBUG")
    Logger.intercept_stdlib()

    assert logging.getLogger("azure").level == before
