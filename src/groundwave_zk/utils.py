"""Concurrency helpers shared by the resolver and the cache coordinator."""

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional


class ReadWriteLock:
    """A reader-biased read/write lock.

    Any number of readers may hold the lock at once. A writer waits until
    no readers remain and then holds it exclusively. New readers are
    admitted whenever no writer is active, so a steady stream of readers
    can delay writers; writers here only swap references and are rare.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            while self._writer or self._readers > 0:
                self._cond.wait()
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class CancelToken:
    """Cancellation signal with an optional deadline.

    Network calls check the token before issuing a request and cap their
    timeout to the remaining time. The token is cancelled when its event
    is set or when the deadline (a ``time.monotonic()`` value) has passed.

    Example:
        token = CancelToken.with_timeout(900, event=stop_event)
        client.fetch(url, cancel=token)
    """

    def __init__(
        self,
        event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> None:
        self._event = event or threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(
        cls, seconds: float, event: Optional[threading.Event] = None
    ) -> "CancelToken":
        return cls(event=event, deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def deadline_exceeded(self) -> bool:
        return (
            not self._event.is_set()
            and self._deadline is not None
            and time.monotonic() >= self._deadline
        )

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())
