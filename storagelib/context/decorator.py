import inspect
import logging
import time
from functools import wraps
from typing import Callable, Optional

from storagelib.context.logger import current_func, log_func

logger = logging.getLogger(__name__)


class Decorator:
    """
    Tracing decorator for remote calls:
      - Hierarchical function-name context via log_func
      - Timing of each call
      - Failure logging (exceptions always propagate)
    """

    @staticmethod
    def traced(label: Optional[str] = None, *, timed: bool = True):
        """
        Decorator factory. Usage:

            @traced()
            def get_account(...): ...

            @traced("AzureResourceClient.delete")
            async def delete_account(...): ...

        Parameters:
            label (str):  Name pushed onto the call stack; defaults to fn.__qualname__.
            timed (bool): If True, log execution duration at DEBUG.
        """
        def decorator(fn: Callable):
            name = label or fn.__qualname__

            if inspect.iscoroutinefunction(fn):
                @wraps(fn)
                async def async_wrapper(*args, **kwargs):
                    with log_func(name):
                        start = time.perf_counter()
                        try:
                            return await fn(*args, **kwargs)
                        except Exception as e:
                            logger.debug(f"[{current_func()}] ❌ {type(e).__name__}: {e}")
                            raise
                        finally:
                            if timed:
                                logger.debug(f"[{name}] took {time.perf_counter() - start:.3f}s")
                return async_wrapper

            @wraps(fn)
            def wrapper(*args, **kwargs):
                with log_func(name):
                    start = time.perf_counter()
                    try:
                        return fn(*args, **kwargs)
                    except Exception as e:
                        logger.debug(f"[{current_func()}] ❌ {type(e).__name__}: {e}")
                        raise
                    finally:
                        if timed:
                            logger.debug(f"[{name}] took {time.perf_counter() - start:.3f}s")
            return wrapper

        return decorator


traced = Decorator.traced
