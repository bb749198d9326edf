import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, Union

logger = logging.getLogger(__name__)


def _never(_: BaseException) -> bool:
    return False


class ErrorHandling:
    @staticmethod
    def _delay(backoff_base: Optional[float], current_attempt: int) -> float:
        if not backoff_base:
            return 0.0
        return backoff_base ** (current_attempt - 1)

    @staticmethod
    def attempt(
            fn: Callable[[], Any],
            retries: int = 1,
            backoff_base: Optional[float] = None,
            retry_on: Callable[[BaseException], bool] = _never,
            label: str = "operation",
            sleep: Callable[[float], None] = time.sleep,
    ) -> Any:
        """
        Executes a no-argument callable with bounded retry and optional exponential backoff.

        Only exceptions for which `retry_on(exc)` is true are re-attempted; anything else
        propagates immediately. With the default `retries=1` the call is fail-fast.

        Args:
            fn (Callable[[], Any]): A zero-argument callable (wrap arguments in a lambda or functools.partial).
            retries (int): Total number of attempts, at least 1.
            backoff_base (float, optional): If set, sleeps base ** (attempt - 1) seconds between attempts.
            retry_on (Callable[[BaseException], bool]): Predicate selecting retryable failures.
            label (str): Label for logging context.
            sleep (Callable[[float], None]): Sleep function, injectable for tests.

        Returns:
            Any: The result of `fn()` if successful.

        Raises:
            Exception: The last raised exception if all attempts fail or the failure is not retryable.
        """
        if not callable(fn):
            raise TypeError(f"[{label}] attempt() expects a callable")
        retries = max(1, int(retries))

        for current_attempt in range(1, retries + 1):
            try:
                return fn()
            except Exception as e:
                if current_attempt >= retries or not retry_on(e):
                    raise
                delay = ErrorHandling._delay(backoff_base, current_attempt)
                logger.warning(f"[{label}] Attempt {current_attempt}/{retries} failed: {e}; retrying in {delay}s")
                if delay:
                    sleep(delay)

    @staticmethod
    async def attempt_async(
            fn: Callable[[], Awaitable[Any]],
            retries: int = 1,
            backoff_base: Optional[float] = None,
            retry_on: Callable[[BaseException], bool] = _never,
            label: str = "operation",
    ) -> Any:
        """
        Awaiting counterpart of `attempt`. `fn` must return a fresh awaitable on every call.
        """
        if not callable(fn):
            raise TypeError(f"[{label}] attempt_async() expects a callable")
        retries = max(1, int(retries))

        for current_attempt in range(1, retries + 1):
            try:
                return await fn()
            except Exception as e:
                if current_attempt >= retries or not retry_on(e):
                    raise
                delay = ErrorHandling._delay(backoff_base, current_attempt)
                logger.warning(f"[{label}] Attempt {current_attempt}/{retries} failed: {e}; retrying in {delay}s")
                if delay:
                    await asyncio.sleep(delay)

    @staticmethod
    def check_types(arg: Any, expected: Union[Type, Tuple[Type, ...], list], label: str = "check_types") -> Any:
        """
        Verifies that the input or each item in a list matches any of the expected type(s).

        Args:
            arg (Any): The argument or list of arguments to check.
            expected (Type, tuple, or list of types): Acceptable types (e.g., str, int).
            label (str): Label for clearer error messages.

        Returns:
            The original arg if valid.

        Raises:
            TypeError: If any input does not match the expected types.
        """
        if isinstance(expected, list):
            expected_types = tuple(expected)
        elif isinstance(expected, type):
            expected_types = (expected,)
        elif isinstance(expected, tuple):
            expected_types = expected
        else:
            raise TypeError(f"[{label}] Invalid 'expected' type: {type(expected)}")

        def _validate(x):
            if not isinstance(x, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                raise TypeError(f"[{label}] Expected type(s): {type_names}; got {type(x).__name__}")

        if isinstance(arg, list):
            for item in arg:
                _validate(item)
        else:
            _validate(arg)

        return arg


attempt = ErrorHandling.attempt
attempt_async = ErrorHandling.attempt_async
check_types = ErrorHandling.check_types
