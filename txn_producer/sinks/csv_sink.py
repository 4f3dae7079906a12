"""
CSV sink.

Writes one header row followed by one row per transaction in the fixed
17-column order. Rows are buffered and written with `csv.writer.writerows`;
each flush also pushes the file buffer to the OS.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from txn_producer.domain.models import TRANSACTION_FIELDS, Transaction
from txn_producer.errors import SinkInitError
from txn_producer.sinks.abstract import AbstractSink
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from txn_producer.metrics import MetricsAggregator

log = get_logger(__name__)


class CsvSink(AbstractSink):
    """
    Buffered CSV writer.

    Parameters
    ----------
    directory : Path
        Output directory; created if missing.
    filename : str
        File name inside ``directory``. An existing file is overwritten.
    buffer_size : int
        Rows held in memory before a batched write.
    metrics : MetricsAggregator, optional
        Receives written/error counts as they happen.

    Raises
    ------
    SinkInitError
        If the directory or file cannot be created.
    """

    name = "csv"

    def __init__(
        self,
        directory: Path | str,
        filename: str,
        buffer_size: int,
        metrics: Optional["MetricsAggregator"] = None,
    ) -> None:
        super().__init__(buffer_size, metrics)
        self.path = Path(directory) / filename
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("w", encoding="utf-8", newline="")
        except OSError as exc:
            raise SinkInitError(self.name, f"cannot open {self.path}: {exc}") from exc
        self._writer = csv.writer(self._file)
        try:
            self._writer.writerow(TRANSACTION_FIELDS)
        except OSError as exc:
            self._file.close()
            raise SinkInitError(self.name, f"cannot write header to {self.path}: {exc}") from exc
        log.info("CSV sink opened", extra={"path": str(self.path), "buffer_size": self.buffer_size})

    def _encode(self, record: Transaction) -> List[str]:
        row = record.to_row()
        if len(row) != len(TRANSACTION_FIELDS):
            raise ValueError(f"expected {len(TRANSACTION_FIELDS)} fields, got {len(row)}")
        return [str(value) for value in row]

    def _flush_batch(self, batch: List[List[str]]) -> int:
        self._writer.writerows(batch)
        self._file.flush()
        return len(batch)

    def _release(self) -> None:
        if not self._file.closed:
            self._file.close()
        log.info(
            "CSV sink closed",
            extra={"path": str(self.path), "rows": self.count(), "errors": self.errors()},
        )

    def discard(self) -> None:
        """Close without flushing and remove the partially written file."""
        self._buffer.clear()
        self._closed = True
        if not self._file.closed:
            self._file.close()
        self.path.unlink(missing_ok=True)


__all__ = ["CsvSink"]
