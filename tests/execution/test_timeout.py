"""Tests for per-attempt deadline enforcement."""

import asyncio
import functools
import threading
import time

import pytest
from structlog.testing import capture_logs

from storyloom.execution.timeout import (
    TimeoutExpired,
    in_thread,
    is_async_operation,
    run_with_deadline,
)


class TestTimeoutExpired:
    """Tests for the TimeoutExpired exception."""

    def test_is_builtin_timeout_error(self):
        assert issubclass(TimeoutExpired, TimeoutError)

    def test_message_includes_operation_and_elapsed(self):
        exc = TimeoutExpired(timeout=2.0, elapsed=2.01, operation="openai.images")
        assert "openai.images" in str(exc)
        assert "2.0s" in str(exc)
        assert "ran for 2.01s" in str(exc)
        assert exc.timeout == 2.0

    def test_message_without_elapsed(self):
        exc = TimeoutExpired(timeout=1.0)
        assert str(exc) == "Operation 'operation' timed out after 1.0s"


class TestRunWithDeadline:
    """Tests for run_with_deadline."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self):
        async def quick():
            await asyncio.sleep(0.01)
            return "done"

        assert await run_with_deadline(quick, 1.0) == "done"

    @pytest.mark.asyncio
    async def test_plain_value_returned_directly(self):
        """A synchronous operation runs in a worker thread; its value is returned."""
        assert await run_with_deadline(lambda: 42, 1.0) == 42

    @pytest.mark.asyncio
    async def test_operation_error_propagates(self):
        async def broken():
            raise ConnectionResetError("reset by peer")

        with pytest.raises(ConnectionResetError, match="reset by peer"):
            await run_with_deadline(broken, 1.0)

    @pytest.mark.asyncio
    async def test_deadline_expiry_raises(self):
        async def slow():
            await asyncio.sleep(5)

        start = time.monotonic()
        with pytest.raises(TimeoutExpired) as exc_info:
            await run_with_deadline(slow, 0.05, "slow_op")
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert exc_info.value.operation == "slow_op"
        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_expired_work_is_cancelled(self):
        """The abandoned coroutine is cancelled, aborting its I/O."""
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(TimeoutExpired):
            await run_with_deadline(slow, 0.05)
        await asyncio.wait_for(cancelled.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_late_completion_is_discarded(self):
        """Work that finishes after its deadline changes nothing for the caller."""
        finished = asyncio.Event()

        async def stubborn():
            await asyncio.sleep(0.1)
            finished.set()
            return "late"

        async def shielded():
            # shield keeps the inner coroutine alive past the deadline
            return await asyncio.shield(stubborn())

        with capture_logs():
            with pytest.raises(TimeoutExpired):
                await run_with_deadline(shielded, 0.02)
            await asyncio.wait_for(finished.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_late_thread_result_is_discarded(self):
        release = threading.Event()
        done = threading.Event()

        def blocking():
            release.wait(timeout=2.0)
            done.set()
            return "late"

        with pytest.raises(TimeoutExpired):
            await run_with_deadline(in_thread(blocking), 0.05)
        release.set()
        assert await asyncio.to_thread(done.wait, 2.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -1])
    async def test_non_positive_timeout_rejected(self, timeout):
        with pytest.raises(ValueError):
            await run_with_deadline(lambda: "x", timeout)

    @pytest.mark.asyncio
    async def test_caller_cancellation_cancels_inner_work(self):
        inner_cancelled = asyncio.Event()
        started = asyncio.Event()

        async def slow():
            started.set()
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                inner_cancelled.set()
                raise

        outer = asyncio.create_task(run_with_deadline(slow, 10.0))
        await started.wait()
        outer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await outer
        await asyncio.wait_for(inner_cancelled.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_caller_cancellation_consumes_inner_failure(self):
        """An inner task that fails while unwinding still has its exception retrieved."""
        started = asyncio.Event()

        async def stubborn():
            started.set()
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                raise RuntimeError("cleanup failed") from None

        with capture_logs() as logs:
            outer = asyncio.create_task(run_with_deadline(stubborn, 10.0, "stubborn"))
            await started.wait()
            outer.cancel()
            with pytest.raises(asyncio.CancelledError):
                await outer
            await asyncio.sleep(0.01)

        discarded = [entry for entry in logs if entry["event"] == "deadline.late_completion_discarded"]
        assert len(discarded) == 1
        assert discarded[0]["operation"] == "stubborn"
        assert "cleanup failed" in discarded[0]["error"]


class TestSynchronousOperations:
    """Plain callables run off the event loop under the same deadline."""

    @pytest.mark.asyncio
    async def test_blocking_sync_operation_times_out(self):
        def blocking():
            time.sleep(0.5)
            return "late"

        start = time.monotonic()
        with capture_logs():
            with pytest.raises(TimeoutExpired):
                await run_with_deadline(blocking, 0.05, "blocking")
        assert time.monotonic() - start < 0.4

    @pytest.mark.asyncio
    async def test_blocking_sync_operation_does_not_stall_loop(self):
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        tick_task = asyncio.create_task(ticker())
        assert await run_with_deadline(lambda: time.sleep(0.1) or "slept", 1.0) == "slept"
        await tick_task
        assert len(ticks) == 3
        assert ticks[-1] - ticks[0] < 0.09

    @pytest.mark.asyncio
    async def test_sync_callable_returning_coroutine_is_awaited(self):
        async def fetch(value):
            await asyncio.sleep(0.01)
            return value * 2

        assert await run_with_deadline(lambda: fetch(21), 1.0) == 42

    @pytest.mark.asyncio
    async def test_sync_callable_error_propagates(self):
        def broken():
            raise ConnectionResetError("reset by peer")

        with pytest.raises(ConnectionResetError, match="reset by peer"):
            await run_with_deadline(broken, 1.0)


class TestIsAsyncOperation:
    def test_coroutine_function(self):
        async def op():
            return None

        assert is_async_operation(op) is True

    def test_partial_of_coroutine_function(self):
        async def op(value):
            return value

        assert is_async_operation(functools.partial(op, 1)) is True

    def test_object_with_async_call(self):
        class Operation:
            async def __call__(self):
                return None

        assert is_async_operation(Operation()) is True

    def test_plain_callables(self):
        assert is_async_operation(lambda: None) is False
        assert is_async_operation(time.sleep) is False


class TestInThread:
    """Tests for the in_thread adapter."""

    @pytest.mark.asyncio
    async def test_runs_blocking_call_off_loop(self):
        def add(a, b, scale=1):
            return (a + b) * scale

        assert await run_with_deadline(in_thread(add, 2, 3, scale=10), 1.0) == 50

    @pytest.mark.asyncio
    async def test_blocking_call_does_not_stall_loop(self):
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        tick_task = asyncio.create_task(ticker())
        await run_with_deadline(in_thread(time.sleep, 0.1), 1.0)
        await tick_task
        assert len(ticks) == 3
