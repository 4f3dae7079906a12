from __future__ import annotations

import csv
from pathlib import Path
from typing import List

import pyarrow.parquet as pq
import pytest

from txn_producer.domain.models import INTEGER_FIELDS, TRANSACTION_FIELDS, Transaction
from txn_producer.errors import SinkCloseError, SinkInitError, SinkWriteError
from txn_producer.generator import GenerationContext, TransactionGenerator
from txn_producer.metrics import MetricsAggregator
from txn_producer.sinks import CsvSink, ParquetSink

RECORD_COUNT = 250
BUFFER_SIZE = 100


@pytest.fixture
def records(reference_data) -> List[Transaction]:
    generator = TransactionGenerator(GenerationContext(reference_data), seed=3)
    return [generator.generate_one() for _ in range(RECORD_COUNT)]


def _broken_record() -> Transaction:
    # Missing every field but the ID.
    return Transaction.model_construct(id="TXN-20250101-99999999")


def _read_csv(path: Path) -> List[List[str]]:
    with path.open("r", newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


class TestCsvSink:
    def test_header_written_at_construction(self, tmp_path: Path):
        sink = CsvSink(tmp_path / "out", "tx.csv", BUFFER_SIZE)
        sink.close()

        rows = _read_csv(tmp_path / "out" / "tx.csv")
        assert rows == [list(TRANSACTION_FIELDS)]

    def test_rows_round_trip(self, tmp_path: Path, records):
        metrics = MetricsAggregator(sinks=["csv"])
        sink = CsvSink(tmp_path, "tx.csv", BUFFER_SIZE, metrics=metrics)
        sink.write(iter(records))
        sink.close()

        rows = _read_csv(tmp_path / "tx.csv")
        assert len(rows) == RECORD_COUNT + 1
        assert sink.count() == RECORD_COUNT
        assert sink.errors() == 0
        assert metrics.snapshot()["sinks"]["csv"]["written"] == RECORD_COUNT
        for row, record in zip(rows[1:], records):
            assert row == [str(value) for value in record.to_row()]
            parsed = dict(zip(rows[0], row))
            assert parsed["bet_amount"] == record.bet_amount
            assert int(parsed["agent_id"]) == record.agent_id

    def test_flushes_when_buffer_fills(self, tmp_path: Path, records):
        sink = CsvSink(tmp_path, "tx.csv", BUFFER_SIZE)
        flushed: List[int] = []
        original = sink._flush_batch

        def spy(batch):
            flushed.append(len(batch))
            return original(batch)

        sink._flush_batch = spy  # type: ignore[method-assign]
        sink.write(iter(records))
        sink.close()

        assert flushed == [100, 100, 50]

    def test_unencodable_record_is_counted_and_skipped(
        self, tmp_path: Path, records, caplog: pytest.LogCaptureFixture
    ):
        sink = CsvSink(tmp_path, "tx.csv", BUFFER_SIZE)
        with caplog.at_level("WARNING", logger="txn_producer.sinks.abstract"):
            sink.write(iter([records[0], _broken_record(), records[1]]))
        sink.close()

        skipped = [r for r in caplog.records if r.getMessage().startswith("Skipping record")]
        assert [r.record_id for r in skipped] == ["TXN-20250101-99999999"]

        rows = _read_csv(tmp_path / "tx.csv")
        assert [row[0] for row in rows[1:]] == [records[0].id, records[1].id]
        assert sink.count() == 2
        assert sink.errors() == 1

    def test_flush_failure_raises_write_error(self, tmp_path: Path, records):
        sink = CsvSink(tmp_path, "tx.csv", 10)

        def fail(batch):
            raise OSError("disk full")

        sink._flush_batch = fail  # type: ignore[method-assign]
        with pytest.raises(SinkWriteError, match="disk full"):
            sink.write(iter(records))
        assert sink.errors() == 10
        sink.close()

    def test_close_is_idempotent(self, tmp_path: Path):
        sink = CsvSink(tmp_path, "tx.csv", BUFFER_SIZE)
        sink.close()
        sink.close()

    def test_unwritable_directory_raises_init_error(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(SinkInitError, match="csv"):
            CsvSink(blocker, "tx.csv", BUFFER_SIZE)

    def test_discard_removes_file(self, tmp_path: Path, records):
        sink = CsvSink(tmp_path, "tx.csv", BUFFER_SIZE)
        sink.discard()
        assert not (tmp_path / "tx.csv").exists()


class TestParquetSink:
    def test_rows_round_trip_with_typed_schema(self, tmp_path: Path, records):
        sink = ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE, "snappy")
        sink.write(iter(records))
        sink.close()

        table = pq.read_table(tmp_path / "tx.parquet")
        assert table.num_rows == RECORD_COUNT
        assert table.column_names == list(TRANSACTION_FIELDS)
        for name in INTEGER_FIELDS:
            assert str(table.schema.field(name).type) == "int32"
        assert str(table.schema.field("bet_amount").type) == "string"

        rows = table.to_pylist()
        for row, record in zip(rows, records):
            assert tuple(row[name] for name in TRANSACTION_FIELDS) == record.to_row()

    def test_each_flush_is_one_row_group(self, tmp_path: Path, records):
        sink = ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE, "none")
        sink.write(iter(records))
        sink.close()

        metadata = pq.ParquetFile(tmp_path / "tx.parquet").metadata
        sizes = [metadata.row_group(i).num_rows for i in range(metadata.num_row_groups)]
        assert sizes == [100, 100, 50]

    @pytest.mark.parametrize("compression", ["none", "snappy", "gzip", "zstd"])
    def test_supported_compression(self, tmp_path: Path, records, compression):
        sink = ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE, compression)
        sink.write(iter(records[:10]))
        sink.close()

        assert pq.read_table(tmp_path / "tx.parquet").num_rows == 10

    def test_unknown_compression_rejected(self, tmp_path: Path):
        with pytest.raises(SinkInitError, match="unsupported compression"):
            ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE, "brotli-max")

    def test_wrongly_typed_record_is_counted_and_skipped(self, tmp_path: Path, records):
        bad = records[1].model_copy(update={"agent_id": "seven"})
        sink = ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE)
        sink.write(iter([records[0], bad, _broken_record(), records[2]]))
        sink.close()

        table = pq.read_table(tmp_path / "tx.parquet")
        assert table.column("id").to_pylist() == [records[0].id, records[2].id]
        assert sink.errors() == 2

    def test_close_failure_raises_close_error(self, tmp_path: Path, records):
        sink = ParquetSink(tmp_path, "tx.parquet", BUFFER_SIZE)
        sink._buffer.append(records[0].to_row())

        def fail(batch):
            raise OSError("device gone")

        sink._flush_batch = fail  # type: ignore[method-assign]
        with pytest.raises(SinkCloseError, match="device gone"):
            sink.close()
