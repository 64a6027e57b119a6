"""Cancellation tokens and the per-test timeout guard.

A deadline first cancels the test's token, which stops cooperative bodies.
A body that is still running after the grace period cannot be stopped from
inside the process, so the guard hands over to its expiry callback, which is
expected to terminate the process.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from script_harness.errors import TestCancelledError

log = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-shot cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        """Raise TestCancelledError when cancellation was requested."""
        if self.cancelled:
            raise TestCancelledError("test was cancelled after its deadline")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses."""
        return self._event.wait(timeout)


@dataclass(kw_only=True)
class TimeoutGuard:
    """Deadline for exactly one in-flight test.

    Timers run on their own threads so the guard fires even while a test
    blocks the event loop.
    """

    timeout: float
    grace: float
    on_expire: Callable[[], None]
    deadline_passed: bool = field(default=False, init=False)
    fired: bool = field(default=False, init=False)
    _token: CancellationToken | None = field(default=None, init=False, repr=False)
    _timer: threading.Timer | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    @property
    def armed(self) -> bool:
        """Whether a deadline is pending."""
        return self._token is not None

    def arm(self, token: CancellationToken) -> None:
        """Start the deadline for the test owning ``token``."""
        with self._lock:
            if self._token is not None:
                raise RuntimeError("Timeout guard is already armed")
            self._token = token
            self.deadline_passed = False
            self.fired = False
            self._start(self.timeout, self._deadline_reached)

    def disarm(self) -> bool:
        """Stop the deadline.

        Returns:
            True if the deadline had passed before disarming

        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._token = None
            return self.deadline_passed

    def _start(self, interval: float, action: Callable[[], None]) -> None:
        timer = threading.Timer(interval, action)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _deadline_reached(self) -> None:
        with self._lock:
            token = self._token
            if token is None:
                return
            self.deadline_passed = True
            self._start(self.grace, self._expire)
        log.warning("Test exceeded its %.1fs deadline, cancelling", self.timeout)
        token.cancel()

    def _expire(self) -> None:
        with self._lock:
            if self._token is None:
                return
            self.fired = True
        log.error(
            "Test did not stop within %.1fs of cancellation, aborting", self.grace
        )
        self.on_expire()
