"""
Bounded pool of writers.

Writers are expensive (each owns a MongoDB client), so the processor
borrows one per URI and hands it back afterwards. The pool never holds
more than ``max_active`` writers, idle and checked-out combined, and a
borrow waits at most ``max_wait_for_idle_ms`` for one to come back.

A writer that lost its store stays in rotation, failing fast, until it
has been degraded for ``degraded_cooldown_ms``; it is then closed and
the next borrow builds a fresh one.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, Optional, Protocol, TypeVar

from crawl_sink.core.exceptions import PoolExhausted, WriteInterrupted
from crawl_sink.core.logging import get_logger
from crawl_sink.domain.models import DEFAULT_DEGRADED_COOLDOWN_MS, MongoParameters
from crawl_sink.infrastructure.db.writer import MongoWriter

logger = get_logger(__name__)


class PoolMember(Protocol):
    serial: int

    @property
    def available(self) -> bool:
        ...

    def close(self) -> None:
        ...


W = TypeVar("W", bound=PoolMember)


class SerialCounter:
    """Thread-safe monotonically increasing serial number source."""

    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        """The serial the next writer will get."""
        with self._lock:
            return self._value

    def next(self) -> int:
        with self._lock:
            value = self._value
            self._value += 1
            return value

    def advance_to(self, value: int) -> None:
        """Move forward to ``value``; never moves backwards."""
        with self._lock:
            self._value = max(self._value, value)


class WriterPool(Generic[W]):
    """Thread-safe bounded object pool with a wait budget."""

    def __init__(
        self,
        factory: Callable[[int], W],
        max_active: int,
        max_wait_for_idle_ms: int,
        serial: Optional[SerialCounter] = None,
        degraded_cooldown_ms: int = 0,
    ) -> None:
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        self.max_active = max_active
        self.max_wait_for_idle_ms = max(0, max_wait_for_idle_ms)
        self.degraded_cooldown_ms = max(0, degraded_cooldown_ms)
        self.serial = serial if serial is not None else SerialCounter()
        self._factory = factory
        self._condition = threading.Condition()
        self._idle: list[W] = []
        self._checked_out: set[W] = set()
        self._degraded_since: dict[W, float] = {}
        self._creating = 0
        self._closed = False

    @property
    def active_count(self) -> int:
        """Writers currently checked out."""
        with self._condition:
            return len(self._checked_out)

    @property
    def idle_count(self) -> int:
        with self._condition:
            return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    def borrow(self) -> W:
        """
        Take a writer, building one if the pool has room.

        Raises:
            PoolExhausted: If none became idle within the wait budget.
            WriteInterrupted: If the pool is, or gets, closed.
        """
        deadline = time.monotonic() + self.max_wait_for_idle_ms / 1000
        with self._condition:
            while True:
                if self._closed:
                    raise WriteInterrupted("writer pool is closed")
                if self._idle:
                    writer = self._idle.pop()
                    self._checked_out.add(writer)
                    return writer
                if len(self._checked_out) + self._creating < self.max_active:
                    # reserve the slot, build outside the lock
                    self._creating += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhausted(self.max_active, self.max_wait_for_idle_ms)
                self._condition.wait(remaining)

        try:
            writer = self._factory(self.serial.next())
        except BaseException:
            with self._condition:
                self._creating -= 1
                self._condition.notify()
            raise

        with self._condition:
            self._creating -= 1
            closed = self._closed
            if not closed:
                self._checked_out.add(writer)
        if closed:
            self._close_member(writer)
            raise WriteInterrupted("writer pool is closed")

        logger.info(
            "Created writer #%d (%d/%d checked out)",
            writer.serial,
            self.active_count,
            self.max_active,
        )
        return writer

    def release(self, writer: W) -> None:
        """
        Hand a borrowed writer back.

        Writers degraded for longer than the cool-down, and writers
        returned after ``close()``, are closed instead of going back to
        idle.
        """
        with self._condition:
            if writer not in self._checked_out:
                raise ValueError(f"{writer!r} was not borrowed from this pool")
            self._checked_out.discard(writer)
            discard = self._closed or self._cooled_down(writer)
            if discard:
                self._degraded_since.pop(writer, None)
            else:
                self._idle.append(writer)
            self._condition.notify()

        if discard:
            if not self._closed:
                logger.warning("Discarding degraded writer #%d", writer.serial)
            self._close_member(writer)

    @contextmanager
    def borrowed(self) -> Iterator[W]:
        """Borrow a writer for the duration of the block."""
        writer = self.borrow()
        try:
            yield writer
        finally:
            self.release(writer)

    def close(self) -> None:
        """Close idle writers now; checked-out ones close on release."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            idle, self._idle = self._idle, []
            self._degraded_since.clear()
            self._condition.notify_all()

        for writer in idle:
            self._close_member(writer)
        logger.info("Writer pool closed (%d idle writers closed)", len(idle))

    def _cooled_down(self, writer: W) -> bool:
        """Whether a degraded writer is due for replacement. Caller holds the lock."""
        if writer.available:
            self._degraded_since.pop(writer, None)
            return False
        now = time.monotonic()
        since = self._degraded_since.setdefault(writer, now)
        return (now - since) * 1000 >= self.degraded_cooldown_ms

    def _close_member(self, writer: W) -> None:
        try:
            writer.close()
        except Exception as exc:
            logger.warning("Exception in closing writer #%d: %s", writer.serial, exc)


class MongoWriterPool(WriterPool[MongoWriter]):
    """Pool of ``MongoWriter`` objects sharing one parameter bundle."""

    def __init__(
        self,
        serial: SerialCounter,
        parameters: MongoParameters,
        max_active: int,
        max_wait_for_idle_ms: int,
        connect_retries: int = 3,
        connect_base_delay: float = 0.5,
        server_selection_timeout_ms: int = 5000,
        degraded_cooldown_ms: int = DEFAULT_DEGRADED_COOLDOWN_MS,
    ) -> None:
        self.parameters = parameters
        self._connect_retries = connect_retries
        self._connect_base_delay = connect_base_delay
        self._server_selection_timeout_ms = server_selection_timeout_ms
        super().__init__(
            self.make_writer,
            max_active,
            max_wait_for_idle_ms,
            serial,
            degraded_cooldown_ms=degraded_cooldown_ms,
        )

    def make_writer(self, serial: int) -> MongoWriter:
        return MongoWriter(
            self.parameters,
            serial,
            connect_retries=self._connect_retries,
            connect_base_delay=self._connect_base_delay,
            server_selection_timeout_ms=self._server_selection_timeout_ms,
        )
