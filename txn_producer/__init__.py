"""
Transaction Producer - concurrent synthetic betting transaction generator.

Generates internally consistent betting transactions from static reference
data and duplicates every record to each enabled sink:

- CSV files (header plus one row per transaction)
- Parquet files (one row group per flushed batch)
- A Kafka topic (JSON payload keyed by transaction ID)

Runs either a fixed number of records across a pool of generator threads or
continuously until interrupted, reporting throughput as it goes.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from txn_producer.config import Settings, get_settings, load_settings
from txn_producer.domain.models import ReferenceData, Transaction
from txn_producer.errors import ProducerError, StartupError
from txn_producer.metrics import MetricsAggregator
from txn_producer.pipeline import Pipeline, PipelineState, RunSummary, install_signal_handlers
from txn_producer.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    "load_settings",
    # Domain
    "ReferenceData",
    "Transaction",
    # Running
    "MetricsAggregator",
    "Pipeline",
    "PipelineState",
    "RunSummary",
    "install_signal_handlers",
    # Errors
    "ProducerError",
    "StartupError",
    # Logging
    "configure_logging",
    "get_logger",
]
