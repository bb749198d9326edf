# ─── Hierarchical Call Stack Tracking ─────────────────────────────────────────
import contextvars
import logging
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

from loguru import logger as _loguru

# Third-party loggers that are chatty at INFO (azure-core logs every request and response header)
SDK_LOGGERS = ("azure", "msal")

# A context variable holding the current call‐stack as a tuple of function names
_call_stack: contextvars.ContextVar = contextvars.ContextVar("_call_stack", default=())


@contextmanager
def log_func(name: str):
    """
    Context manager to push/pop a function name onto the call stack.
    """
    stack = _call_stack.get()
    token = _call_stack.set(stack + (name,))
    try:
        yield
    finally:
        _call_stack.reset(token)


def current_func() -> str:
    return ".".join(_call_stack.get())


def _enrich_record(record):
    """
    Loguru patch function: injects extra['func'] = dot-joined call stack.
    """
    record["extra"]["func"] = current_func()
    return record


class InterceptHandler(logging.Handler):
    """
    A logging.Handler that re-emits stdlib LogRecords through loguru, so library
    modules can keep using logging.getLogger(__name__).
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = Logger.get_loguru().level(record.levelname).name
        except (ValueError, RuntimeError):
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        Logger.get_loguru().opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


# ─── Logger Utility ───────────────────────────────────────────────────────────

class Logger:
    """
    Logger utility using loguru with UUID‐tagged session identity.
    Adds a patch to include hierarchical func names in every record.
    """

    _configured = False
    _uuid = None
    _logger = None
    _log_path = None
    _handler_ids = SimpleNamespace(file=None, console=None)
    _intercepted = False
    _root_level = logging.WARNING
    _level = "INFO"
    _sdk_levels = {}

    @staticmethod
    def init_logger(
            log_dir: Optional[Path] = Path("logs"),
            label: str = None,
            serialize: bool = False,
            pretty_console: bool = True,
            level: str = "INFO",
    ):
        """
        Initialize the loguru logger with optional file and console output.
        Logs include a hierarchical func name from the call stack.

        Args:
            log_dir (Path): Directory for the session log file; None disables file output.
            label (str): Suffix for the log file name; defaults to the session UUID.
            serialize (bool): Write the file handler as JSON lines.
            pretty_console (bool): Attach a colorized stderr handler.
            level (str): Minimum level for both handlers.
        """
        if Logger._configured:
            return Logger._logger

        Logger._uuid = str(uuid.uuid4())
        Logger._configured = True
        Logger._level = level.upper()

        _loguru.remove()
        logger = _loguru.patch(_enrich_record)

        # Format: time | LEVEL | func.hierarchy | message
        fmt = (
            "<green>{time:HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[func]}</cyan> | "
            "{message}"
        )

        if pretty_console:
            Logger._handler_ids.console = logger.add(sys.stderr, level=level, colorize=True, format=fmt)

        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
            suffix = f"__{label}" if label else f"__{Logger._uuid}"
            log_file = log_dir / f"{timestamp}{suffix}.log"
            Logger._log_path = log_file
            Logger._handler_ids.file = logger.add(
                str(log_file), level=level, serialize=serialize, format=fmt
            )

        logger.debug("[Logger Init] UUID={} → {}", Logger._uuid, Logger._log_path)
        Logger._logger = logger
        return logger

    @staticmethod
    def intercept_stdlib(level: int = logging.NOTSET) -> None:
        """
        Route the standard library root logger into loguru.

        Loggers in SDK_LOGGERS are held at WARNING unless the session level is
        DEBUG or TRACE.
        """
        if Logger._intercepted:
            return
        root = logging.getLogger()
        Logger._root_level = root.level
        root.addHandler(InterceptHandler())
        root.setLevel(level)
        if Logger._level not in ("DEBUG", "TRACE"):
            for name in SDK_LOGGERS:
                sdk = logging.getLogger(name)
                Logger._sdk_levels[name] = sdk.level
                sdk.setLevel(logging.WARNING)
        Logger._intercepted = True

    @staticmethod
    def get_loguru():
        if not Logger._configured:
            raise RuntimeError("Logger has not been initialized.")
        return Logger._logger

    @staticmethod
    def log_path() -> Optional[Path]:
        return Logger._log_path

    @staticmethod
    def reset():
        if Logger._logger is not None:
            Logger._logger.remove()
        if Logger._intercepted:
            for handler in [h for h in logging.root.handlers if isinstance(h, InterceptHandler)]:
                logging.root.removeHandler(handler)
            logging.root.setLevel(Logger._root_level)
            for name, previous in Logger._sdk_levels.items():
                logging.getLogger(name).setLevel(previous)
        Logger._configured = False
        Logger._uuid = None
        Logger._logger = None
        Logger._log_path = None
        Logger._handler_ids = SimpleNamespace(file=None, console=None)
        Logger._intercepted = False
        Logger._level = "INFO"
        Logger._sdk_levels = {}
