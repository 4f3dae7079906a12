"""
Sink interfaces and the shared buffering discipline.

Concrete sinks (CSV, Parquet, Kafka) subclass `AbstractSink`, which owns the
record buffer, the written/error counters and the close protocol. Subclasses
provide `_encode` (one record to its wire form) and `_flush_batch` (one
batched write); the base class decides when to flush.
"""

from __future__ import annotations

import abc
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    Type,
    runtime_checkable,
)

from txn_producer.domain.models import Transaction
from txn_producer.errors import SinkCloseError, SinkWriteError
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from txn_producer.metrics import MetricsAggregator

log = get_logger(__name__)

# Raised by `_encode` for a record that cannot be serialized.
ENCODE_ERRORS: Tuple[Type[Exception], ...] = (ValueError, TypeError, AttributeError)


@runtime_checkable
class Sink(Protocol):
    """
    Common interface every output sink implements.

    Attributes
    ----------
    name : str
        Short machine-friendly identifier used in metrics and logs.
    """

    name: str

    def write(self, records: Iterable[Transaction]) -> None:
        """Consume ``records`` until exhausted, flushing as buffers fill."""
        ...

    def close(self) -> None:
        """Flush anything buffered and release resources."""
        ...

    def count(self) -> int:
        """Records persisted (or acknowledged) so far."""
        ...

    def errors(self) -> int:
        """Records that failed to serialize or persist."""
        ...


class AbstractSink(abc.ABC):
    """
    Buffered sink base class.

    Records are encoded as they arrive; an encode failure is counted and the
    record skipped. The buffer is flushed when it reaches ``buffer_size``, at
    the end of the stream and on `close`. A failed flush raises
    `SinkWriteError` and the records of that batch are counted as errors.
    """

    name: str
    # Exceptions from `_flush_batch` / `_release` treated as I/O failures.
    io_errors: Tuple[Type[BaseException], ...] = (OSError,)

    def __init__(self, buffer_size: int, metrics: Optional["MetricsAggregator"] = None) -> None:
        self.buffer_size = max(1, buffer_size)
        self.metrics = metrics
        self._buffer: List[Any] = []
        self._count = 0
        self._errors = 0
        self._closed = False
        self._counter_lock = threading.Lock()
        self._cancel = threading.Event()

    # Subclass hooks

    @abc.abstractmethod
    def _encode(self, record: Transaction) -> Any:  # pragma: no cover - interface only
        """Convert one record into the form buffered for `_flush_batch`."""
        raise NotImplementedError

    @abc.abstractmethod
    def _flush_batch(self, batch: List[Any]) -> int:  # pragma: no cover - interface only
        """Persist ``batch``; return the number of records written."""
        raise NotImplementedError

    def _release(self) -> None:
        """Release underlying resources. Called once, from `close`."""

    # Counters

    def _record_written(self, n: int) -> None:
        with self._counter_lock:
            self._count += n
        if self.metrics is not None:
            self.metrics.record_sink_written(self.name, n)

    def _record_error(self, n: int = 1) -> None:
        with self._counter_lock:
            self._errors += n
        if self.metrics is not None:
            self.metrics.record_sink_error(self.name, n)

    def count(self) -> int:
        return self._count

    def errors(self) -> int:
        return self._errors

    # Cancellation

    def bind_cancel(self, cancel: threading.Event) -> None:
        """Share the run's cancellation token; sinks may shorten retries once it is set."""
        self._cancel = cancel

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # Stream handling

    def _encode_or_skip(self, record: Transaction) -> Tuple[bool, Any]:
        try:
            return True, self._encode(record)
        except ENCODE_ERRORS as exc:
            self._record_error()
            log.warning(
                "Skipping record that failed to serialize",
                extra={
                    "sink": self.name,
                    "record_id": getattr(record, "id", None),
                    "error": str(exc),
                },
            )
            return False, None

    def write(self, records: Iterable[Transaction]) -> None:
        for record in records:
            ok, encoded = self._encode_or_skip(record)
            if not ok:
                continue
            self._buffer.append(encoded)
            if len(self._buffer) >= self.buffer_size:
                self.flush()
        self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        try:
            written = self._flush_batch(batch)
        except self.io_errors as exc:
            self._record_error(len(batch))
            raise SinkWriteError(
                f"{self.name} sink failed to write {len(batch)} records: {exc}"
            ) from exc
        self._record_written(written)
        log.debug("Sink flushed", extra={"sink": self.name, "rows": written})

    def close(self) -> None:
        """
        Flush and release resources. Idempotent.

        Raises
        ------
        SinkCloseError
            If the final flush or the release of resources failed.
        """
        if self._closed:
            return
        self._closed = True
        failure: Optional[BaseException] = None
        try:
            self.flush()
        except SinkWriteError as exc:
            failure = exc
        try:
            self._release()
        except self.io_errors as exc:
            failure = failure or exc
        if failure is not None:
            raise SinkCloseError(f"Failed to close {self.name} sink: {failure}") from failure

    def discard(self) -> None:
        """Abandon the sink during startup abort. Defaults to a plain close."""
        self.close()


__all__ = ["Sink", "AbstractSink", "ENCODE_ERRORS"]
