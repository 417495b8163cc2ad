import functools
import gzip
import inspect
import logging
import logging.handlers
import os
import shutil
import sys
from gzip import GzipFile
from pathlib import Path
from typing import Any, Callable, ParamSpec, TypeVar

from .config import settings

logger = logging.getLogger("roomba_bridge")
logger.setLevel(logging.getLevelName(settings.log_level.upper()))
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)

logs_dir = Path(settings.logs_dir)
logs_dir.mkdir(parents=True, exist_ok=True)


def rotator(source, dest):
    with open(source, "rb") as f_in:
        with gzip.open(dest + ".gz", "wb") as f_out:
            assert isinstance(f_out, GzipFile)
            shutil.copyfileobj(f_in, f_out)
    os.remove(source)


log_file_handler = logging.handlers.TimedRotatingFileHandler(
    logs_dir / "bridge.log", when="midnight", encoding="utf-8"
)
log_file_handler.setFormatter(formatter)
log_file_handler.rotator = rotator
logger.addHandler(log_file_handler)

log_stream_handler = logging.StreamHandler(sys.stdout)
log_stream_handler.setFormatter(formatter)
logger.addHandler(log_stream_handler)

def _bind_call(
    sig: inspect.Signature, args: tuple, kwargs: dict
) -> tuple[dict[str, Any], str, str | None]:
    """Bound arguments, their ``[name=value, ...] `` rendering and any binding error."""
    try:
        bound = sig.bind(*args, **kwargs)
    except TypeError as e:
        parts = []
        if args:
            parts.append(f"args={args!r}")
        if kwargs:
            parts.append(f"kwargs={kwargs!r}")
        return {}, f"[{', '.join(parts)}] " if parts else "", str(e)

    bound.apply_defaults()
    rendered = ", ".join(f"{name}={value!r}" for name, value in bound.arguments.items())
    return bound.arguments, f"[{rendered}] " if rendered else "", None


def _render_prefix(prefix: str, arguments: dict[str, Any]) -> tuple[str, str | None]:
    if not prefix:
        return "", None
    if "{" not in prefix or "}" not in prefix:
        return f"{prefix}: ", None
    try:
        return f"{prefix.format_map(arguments)}: ", None
    except (KeyError, AttributeError, IndexError, ValueError) as e:
        return f"{prefix}: ", repr(e)


def _report_failure(
    func_name: str,
    sig: inspect.Signature,
    prefix: str,
    error: Exception,
    args: tuple,
    kwargs: dict,
) -> None:
    # stacklevel 3: this helper, the wrapper, then the decorated function's caller
    arguments, rendered_args, bind_error = _bind_call(sig, args, kwargs)
    if bind_error is not None:
        logger.warning(
            f"Failed to bind arguments for function {func_name}: {bind_error}",
            stacklevel=3,
        )

    rendered_prefix, prefix_error = _render_prefix(prefix, arguments)
    if prefix_error is not None:
        logger.warning(
            f"Failed to format prefix '{prefix}' with arguments: {prefix_error}",
            stacklevel=3,
        )

    logger.error(
        f"{rendered_args}{rendered_prefix}{type(error).__name__}: {error}",
        exc_info=error,
        stacklevel=3,
    )


P = ParamSpec("P")
R = TypeVar("R")


def log_exception(
    prefix: str = "",
    default_return: R | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log any exception raised by the decorated function and return
    ``default_return`` instead of propagating it.

    Used for best-effort side effects such as persisting schedules, where a
    failure must not reach the caller. The record shows the call's bound
    arguments, and ``prefix`` may reference them with braces, including
    attributes (``"Persisting to {self.path}"``).
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        sig = inspect.signature(func)
        func_name = func.__qualname__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    _report_failure(func_name, sig, prefix, e, args, kwargs)
                    return default_return  # type: ignore[return-value]

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _report_failure(func_name, sig, prefix, e, args, kwargs)
                return default_return  # type: ignore[return-value]

        return sync_wrapper  # type: ignore[return-value]

    return decorator
