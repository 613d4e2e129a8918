"""Admission Controller: FIFO-fair cap on concurrent upstream calls.

WHY
───
The image-generation upstream is slow and rate-limited. Letting every
incoming request call it at once gets us 429s and timeouts; N callers that
each retry in parallel make a struggling upstream worse. The controller
keeps at most ``max_concurrent`` logical calls in flight and queues the
rest in arrival order.

ARCHITECTURE
────────────
::

    AdmissionController(max_concurrent=5)
      ├── .acquire()   ─ take a slot, or wait in the FIFO queue
      ├── .release()   ─ hand the slot to the oldest waiter, else free it
      ├── .slot()      ─ async context manager around acquire/release
      └── .snapshot()  ─ active / waiting / max for health endpoints

    acquire():  free slot AND empty queue ─► admitted immediately
                otherwise                  ─► Future appended to queue

    release():  queue non-empty ─► slot transferred to head waiter
                                   (active count unchanged)
                queue empty     ─► active -= 1

A slot is held for the whole logical call, retries and backoff included.

Acquire and release contain no ``await`` between reading and updating
state, so on a single event loop they are indivisible. A request that
arrives while others wait never overtakes them, even if a slot happens
to be free at that instant.

Cancellation:
    A task cancelled while queued leaves the queue. If the slot had
    already been handed to it when the cancellation landed, the slot is
    passed on to the next waiter instead of leaking.

Example::

    admission = AdmissionController(max_concurrent=5, name="openai.images")
    async with admission.slot():
        await call_upstream()
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from storyloom.core.errors import InvalidConfigError
from storyloom.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT = 5


class AdmissionController:
    """Counting semaphore with an explicit FIFO wait queue.

    Parameters
    ----------
    max_concurrent : int
        Number of slots (default 5). Must be at least 1.
    name : str
        Upstream name, used in log records.
    """

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT, name: str = "upstream") -> None:
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent <= 0:
            raise InvalidConfigError(
                "max_concurrent",
                max_concurrent,
                f"max_concurrent must be a positive integer, got {max_concurrent!r}",
            )
        self._max_concurrent = max_concurrent
        self._name = name
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        """Slots currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Requests queued for a slot."""
        return sum(1 for fut in self._waiters if not fut.done())

    @property
    def name(self) -> str:
        return self._name

    def snapshot(self) -> dict[str, Any]:
        """Serialise for logging / health responses."""
        return {
            "name": self._name,
            "max_concurrent": self._max_concurrent,
            "active": self._active,
            "waiting": self.waiting,
        }

    # ── Slots ────────────────────────────────────────────────────────

    async def acquire(self) -> None:
        """Take a slot, waiting in FIFO order if none is free."""
        if self._active < self._max_concurrent and not self._waiters:
            self._active += 1
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        logger.debug(
            "admission.queued",
            upstream=self._name,
            active=self._active,
            waiting=len(self._waiters),
        )
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # The slot was handed over just before the cancellation.
                self.release()
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        """Return a slot; the oldest live waiter receives it synchronously."""
        if self._active <= 0:
            raise RuntimeError(f"AdmissionController {self._name!r} released more slots than acquired")

        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold a slot for the duration of the ``async with`` block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def __repr__(self) -> str:
        return (
            f"AdmissionController(name={self._name!r}, active={self._active}, "
            f"waiting={self.waiting}, max_concurrent={self._max_concurrent})"
        )


__all__ = ["DEFAULT_MAX_CONCURRENT", "AdmissionController"]
