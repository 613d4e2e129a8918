"""Per-attempt deadline enforcement for upstream calls.

An attempt that has not finished when its deadline passes is treated as
failed, unconditionally. The in-flight work is cancelled (aborting the
transport for async HTTP clients) and abandoned: the caller does not wait
for it to unwind, and whatever it eventually produces is discarded.

Architecture:
    ::

        run_with_deadline(operation, 30.0)
              │
              ├─ coroutine function ──► called on the event loop
              │
              └─ anything else ───────► called in a worker thread;
                                        an awaitable it returns is then
                                        awaited on the event loop
                    │
                    ▼
              asyncio.Task  ◄── asyncio.wait(timeout=30.0)
                    │
                    ├─ finished in time ──► result / exception propagated
                    └─ still running ─────► task.cancel(), TimeoutExpired
                                            late result discarded

    A synchronous callable never runs on the event loop, so a blocking call
    cannot stall other work or outlive its deadline. Its thread cannot be
    killed; it is abandoned and its result discarded.

Examples:
    >>> value = await run_with_deadline(functools.partial(client.get, url), 10.0, "fetch")

    >>> value = await run_with_deadline(requests_session_call, 10.0)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from storyloom.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Inherits from built-in TimeoutError for broad exception handling.

    Attributes:
        timeout: The timeout value that was exceeded (seconds)
        elapsed: How long the operation ran before being abandoned
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


def _discard_late_completion(operation: str, task: asyncio.Future) -> None:
    """Done-callback for abandoned attempts; consumes the outcome."""
    if task.cancelled():
        return
    exc = task.exception()
    logger.debug(
        "deadline.late_completion_discarded",
        operation=operation,
        error=repr(exc) if exc is not None else None,
    )


def is_async_operation(operation: Callable[..., Any]) -> bool:
    """True for coroutine functions, partials of them and objects with an async ``__call__``."""
    if inspect.iscoroutinefunction(operation):
        return True
    call = getattr(operation, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


async def _call_off_loop(operation: Callable[[], Awaitable[T] | T]) -> T:
    result = await asyncio.to_thread(operation)
    if inspect.isawaitable(result):
        return await result
    return result


async def run_with_deadline(
    operation: Callable[[], Awaitable[T] | T],
    timeout_seconds: float,
    name: str = "operation",
) -> T:
    """Run ``operation`` and wait at most ``timeout_seconds`` for it.

    Args:
        operation: No-argument callable. Coroutine functions run on the
            event loop; any other callable runs in a worker thread, and an
            awaitable it returns is awaited within the same deadline
        timeout_seconds: Hard deadline in seconds
        name: Operation name for error messages and logs

    Raises:
        TimeoutExpired: The deadline passed first
        ValueError: timeout_seconds <= 0
        Exception: Whatever the operation raised before the deadline
    """
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    start = time.monotonic()
    if is_async_operation(operation):
        pending = operation()
    else:
        pending = _call_off_loop(operation)

    task = asyncio.ensure_future(pending)
    discard = functools.partial(_discard_late_completion, name)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(discard)
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(discard)
    raise TimeoutExpired(
        timeout=timeout_seconds,
        elapsed=time.monotonic() - start,
        operation=name,
    )


def in_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> Callable[[], Awaitable[T]]:
    """Bind arguments to a blocking callable and run it in a thread.

    On timeout the thread cannot be killed; it keeps running and its result
    is discarded.
    """

    @functools.wraps(func)
    async def operation() -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return operation


__all__ = ["TimeoutExpired", "in_thread", "is_async_operation", "run_with_deadline"]
