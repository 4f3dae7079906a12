"""
Fan-out of generated transactions to every active sink.

Each sink owns a `SinkChannel`: a bounded queue fed by an explicit broadcast
in `Distributor.submit`. Every record is offered to every active channel, so
each sink receives the full stream rather than a share of it, and a full
queue only holds back the producer, never another sink's consumer.
"""

from __future__ import annotations

import queue
import threading
from typing import Iterator, List, Sequence

from txn_producer.domain.models import Transaction
from txn_producer.utils.logging import get_logger

log = get_logger(__name__)

# Seconds between cancellation checks while blocked on a queue.
POLL_INTERVAL = 0.1

_CLOSED = object()
# Never set; used once a record has reached at least one channel.
_UNCANCELLABLE = threading.Event()


class SinkChannel:
    """
    Bounded single-consumer queue feeding one sink.

    Producers call `put`; the sink's writer thread iterates `drain`. `close`
    enqueues exactly one terminal marker. `detach` is called by the consumer
    when it stops reading, after which `put` no longer blocks or enqueues.
    """

    def __init__(self, name: str, capacity: int) -> None:
        self.name = name
        self.capacity = capacity
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._detached = threading.Event()
        self._lock = threading.Lock()
        self._accepted = 0

    @property
    def accepted(self) -> int:
        """Records enqueued so far."""
        return self._accepted

    @property
    def active(self) -> bool:
        return not (self._closed.is_set() or self._detached.is_set())

    def put(self, record: Transaction, cancel: threading.Event) -> bool:
        """
        Enqueue ``record``, blocking while the queue is full.

        Returns False if ``cancel`` is set before the record is accepted.
        A detached channel silently drops the record and returns True.
        """
        while True:
            if self._detached.is_set():
                return True
            if cancel.is_set():
                return False
            try:
                self._queue.put(record, timeout=POLL_INTERVAL)
            except queue.Full:
                continue
            with self._lock:
                self._accepted += 1
            return True

    def close(self) -> None:
        """Signal end of stream. Idempotent."""
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
        while not self._detached.is_set():
            try:
                self._queue.put(_CLOSED, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def detach(self) -> None:
        """Consumer stopped; release any producer blocked on this channel."""
        self._detached.set()
        # Free queue slots so a blocked close() can complete promptly.
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def drain(self) -> Iterator[Transaction]:
        """Yield records until the terminal marker arrives."""
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


class Distributor:
    """Broadcast each record to every active `SinkChannel`."""

    def __init__(self, channels: Sequence[SinkChannel]) -> None:
        self.channels: List[SinkChannel] = list(channels)
        self._closed = False
        self._lock = threading.Lock()

    @property
    def active_channels(self) -> List[SinkChannel]:
        return [channel for channel in self.channels if channel.active]

    def submit(self, record: Transaction, cancel: threading.Event) -> bool:
        """
        Offer ``record`` to each active channel in turn.

        Delivery to one channel is complete before the next is attempted, so a
        full queue further down the list never delays a sink already served.
        Cancellation is only honoured before the first channel accepts the
        record; after that every active channel receives it. Returns False
        when cancelled or when no channel is left to feed.
        """
        delivered = False
        for channel in self.channels:
            if not channel.active:
                continue
            if not channel.put(record, _UNCANCELLABLE if delivered else cancel):
                return False
            delivered = True
        return delivered

    def close(self) -> None:
        """Close every channel exactly once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for channel in self.channels:
            channel.close()
        log.debug(
            "Distributor closed",
            extra={"channels": {c.name: c.accepted for c in self.channels}},
        )


__all__ = ["Distributor", "SinkChannel"]
