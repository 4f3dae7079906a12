"""
Parquet sink.

Each flush converts the buffered rows into one `pyarrow.Table` and writes it
as exactly one row group, so ``row_group_size`` is both the buffer threshold
and the row group size on disk. `close` writes the footer; a file that was
never closed is not readable.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import pyarrow as pa
import pyarrow.parquet as pq

from txn_producer.domain.models import INTEGER_FIELDS, TRANSACTION_FIELDS, Transaction
from txn_producer.errors import SinkInitError
from txn_producer.sinks.abstract import AbstractSink
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from txn_producer.metrics import MetricsAggregator

log = get_logger(__name__)

TRANSACTION_SCHEMA = pa.schema(
    [
        pa.field(name, pa.int32() if name in INTEGER_FIELDS else pa.string(), nullable=False)
        for name in TRANSACTION_FIELDS
    ]
)

COMPRESSION_CODECS: Dict[str, str] = {
    "none": "NONE",
    "snappy": "SNAPPY",
    "gzip": "GZIP",
    "lz4": "LZ4",
    "zstd": "ZSTD",
}

_INT32_MAX = 2**31 - 1


def _check_value(name: str, value: Any) -> None:
    if name in INTEGER_FIELDS:
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
        if not -_INT32_MAX - 1 <= value <= _INT32_MAX:
            raise ValueError(f"{name}={value} does not fit in int32")
    elif not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")


class ParquetSink(AbstractSink):
    """
    Columnar writer backed by `pyarrow.parquet.ParquetWriter`.

    Raises
    ------
    SinkInitError
        On an unknown compression codec or when the file cannot be created.
    """

    name = "parquet"
    io_errors = (OSError, pa.ArrowException)

    def __init__(
        self,
        directory: Path | str,
        filename: str,
        row_group_size: int,
        compression: str = "snappy",
        metrics: Optional["MetricsAggregator"] = None,
    ) -> None:
        super().__init__(row_group_size, metrics)
        self.path = Path(directory) / filename
        codec = COMPRESSION_CODECS.get(compression.lower())
        if codec is None:
            raise SinkInitError(self.name, f"unsupported compression {compression!r}")
        self.compression = codec
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer: Optional[pq.ParquetWriter] = pq.ParquetWriter(
                str(self.path), TRANSACTION_SCHEMA, compression=codec
            )
        except (OSError, pa.ArrowException) as exc:
            raise SinkInitError(self.name, f"cannot open {self.path}: {exc}") from exc
        log.info(
            "Parquet sink opened",
            extra={
                "path": str(self.path),
                "row_group_size": self.buffer_size,
                "compression": codec,
            },
        )

    def _encode(self, record: Transaction) -> Tuple[Any, ...]:
        row = record.to_row()
        for name, value in zip(TRANSACTION_FIELDS, row):
            _check_value(name, value)
        return row

    def _flush_batch(self, batch: List[Tuple[Any, ...]]) -> int:
        if self._writer is None:
            raise OSError("parquet writer already closed")
        columns = list(zip(*batch))
        table = pa.Table.from_arrays(
            [pa.array(column, type=f.type) for column, f in zip(columns, TRANSACTION_SCHEMA)],
            schema=TRANSACTION_SCHEMA,
        )
        self._writer.write_table(table, row_group_size=table.num_rows)
        return table.num_rows

    def _release(self) -> None:
        if self._writer is not None:
            writer, self._writer = self._writer, None
            writer.close()
        log.info(
            "Parquet sink closed",
            extra={"path": str(self.path), "rows": self.count(), "errors": self.errors()},
        )

    def discard(self) -> None:
        """Close without flushing and remove the partially written file."""
        self._buffer.clear()
        self._closed = True
        if self._writer is not None:
            writer, self._writer = self._writer, None
            writer.close()
        self.path.unlink(missing_ok=True)


__all__ = ["ParquetSink", "TRANSACTION_SCHEMA", "COMPRESSION_CODECS"]
