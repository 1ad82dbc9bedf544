"""Debounce and throttle wrappers.

Each wrapper is a Scheduler owning one cancellable asyncio timer handle, so
teardown is an explicit cancel() instead of a dangling closure. Wrappers
must be called from inside a running event loop. Wrapped functions may be
plain callables or coroutine functions; coroutines are scheduled as tasks.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, Optional, Set, Tuple

from loguru import logger


class Scheduler:
    """Base class for deferred invocation of a function."""

    def __init__(self, fn: Callable[..., Any], wait_ms: float):
        if wait_ms < 0:
            raise ValueError("wait_ms must be >= 0")
        self._fn = fn
        self.wait_ms = wait_ms
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Future[Any]"] = set()
        self.invocations = 0

    @property
    def name(self) -> str:
        return getattr(self._fn, "__qualname__", repr(self._fn))

    @property
    def pending(self) -> bool:
        """True while a timer is armed."""
        return self._handle is not None

    def cancel(self) -> None:
        """Disarm the timer. Safe to call repeatedly."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self, callback: Callable[[], None]) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.wait_ms / 1000, callback)

    def _invoke(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        self.invocations += 1
        try:
            result = self._fn(*args, **kwargs)
        except Exception:
            logger.exception("Scheduled call to {} failed", self.name)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Future[Any]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error(
                "Scheduled coroutine {} failed", self.name
            )

    async def wait(self) -> None:
        """Wait for coroutines started by earlier invocations."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class Debouncer(Scheduler):
    """Collapses a burst of calls into one trailing invocation."""

    def __init__(self, fn: Callable[..., Any], delay_ms: float):
        super().__init__(fn, delay_ms)
        self._args: Tuple[Any, ...] = ()
        self._kwargs: Dict[str, Any] = {}
        self.calls = 0

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self.calls += 1
        self.cancel()
        self._args = args
        self._kwargs = kwargs
        self._arm(self._fire)

    def _fire(self) -> None:
        self._handle = None
        args, kwargs = self._args, self._kwargs
        self._args, self._kwargs = (), {}
        self._invoke(args, kwargs)

    def flush(self) -> bool:
        """Run a pending invocation now.

        Returns:
            True if a pending call was fired
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True


class Throttler(Scheduler):
    """Leading-edge rate limiter; calls inside the window are dropped."""

    def __init__(self, fn: Callable[..., Any], interval_ms: float):
        super().__init__(fn, interval_ms)
        self.dropped = 0

    @property
    def interval_ms(self) -> float:
        return self.wait_ms

    def __call__(self, *args: Any, **kwargs: Any) -> bool:
        """Invoke unless inside the throttle window.

        Returns:
            True if the call went through, False if it was dropped
        """
        if self._handle is not None:
            self.dropped += 1
            return False

        self._arm(self._reopen)
        self._invoke(args, kwargs)
        return True

    def _reopen(self) -> None:
        self._handle = None


def debounce(fn: Callable[..., Any], delay_ms: float) -> Debouncer:
    """Wrap fn so a burst of calls fires once, delay_ms after the last call.

    Args:
        fn: Function or coroutine function to wrap
        delay_ms: Quiet period in milliseconds

    Returns:
        Debouncer wrapper
    """
    return Debouncer(fn, delay_ms)


def throttle(fn: Callable[..., Any], interval_ms: float) -> Throttler:
    """Wrap fn so it runs at most once per interval_ms, on the leading edge.

    Args:
        fn: Function or coroutine function to wrap
        interval_ms: Window length in milliseconds

    Returns:
        Throttler wrapper
    """
    return Throttler(fn, interval_ms)
