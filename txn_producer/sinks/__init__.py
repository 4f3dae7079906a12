"""
Output sinks.

Each sink consumes the full transaction stream from its own channel on its
own writer thread. All of them share the buffering and counting discipline
of `AbstractSink`.
"""

from txn_producer.sinks.abstract import AbstractSink, Sink
from txn_producer.sinks.csv_sink import CsvSink
from txn_producer.sinks.kafka_sink import KafkaSink
from txn_producer.sinks.parquet_sink import ParquetSink

__all__ = ["AbstractSink", "Sink", "CsvSink", "ParquetSink", "KafkaSink"]
