"""
Run lifecycle: validate, load reference data, open sinks, generate, drain, close.

Usage:
    from txn_producer.config import load_settings
    from txn_producer.pipeline import Pipeline, install_signal_handlers

    settings = load_settings("config.yaml")
    pipeline = Pipeline(settings)
    install_signal_handlers(pipeline.cancel)
    summary = pipeline.run()

On cancellation the generator stops first, then every channel is closed and
each writer drains everything its channel accepted before its sink is
closed. Every accepted record therefore reaches its sink, either written or
counted as an error. Sinks share the cancellation token and stop retrying a
stalled destination once it is set, so the drain finishes promptly.
"""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from txn_producer.config import Settings
from txn_producer.distributor import Distributor, SinkChannel
from txn_producer.errors import (
    ConfigError,
    GenerationCancelled,
    SinkCloseError,
    SinkInitError,
    StartupError,
)
from txn_producer.generator import GenerationContext, TransactionGenerator
from txn_producer.metrics import MetricsAggregator
from txn_producer.reference_data import ReferencePaths, load_reference_data
from txn_producer.sinks import AbstractSink, CsvSink, KafkaSink, ParquetSink
from txn_producer.utils.logging import get_logger
from txn_producer.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

SinkFactory = Callable[[MetricsAggregator], AbstractSink]


class PipelineState(str, Enum):
    IDLE = "idle"
    CONFIG_VALIDATED = "config_validated"
    REF_DATA_LOADED = "ref_data_loaded"
    SINKS_INITIALIZED = "sinks_initialized"
    GENERATING = "generating"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass
class SinkReport:
    name: str
    accepted: int
    written: int
    errors: int
    failure: Optional[str] = None

    @property
    def status(self) -> str:
        return "ok" if self.failure is None else "failed"


@dataclass
class RunSummary:
    """Outcome of one pipeline run."""

    generated: int
    duration_seconds: float
    throughput: float
    assessment: str
    cancelled: bool
    sinks: Dict[str, SinkReport] = field(default_factory=dict)
    profile: Optional[ProfileStats] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "generated": self.generated,
            "duration_seconds": self.duration_seconds,
            "throughput": self.throughput,
            "assessment": self.assessment,
            "cancelled": self.cancelled,
            "sinks": {
                name: {
                    "accepted": report.accepted,
                    "written": report.written,
                    "errors": report.errors,
                    "status": report.status,
                    "failure": report.failure,
                }
                for name, report in self.sinks.items()
            },
            "profile": self.profile.as_dict() if self.profile else None,
        }


def default_sink_factories(settings: Settings) -> List[SinkFactory]:
    """Factories for every sink the settings enable, in CSV, Parquet, Kafka order."""
    factories: List[SinkFactory] = []
    if settings.csv_active:
        factories.append(
            lambda metrics: CsvSink(
                settings.output_directory,
                settings.csv_filename,
                settings.csv_buffer_size,
                metrics=metrics,
            )
        )
    if settings.parquet_active:
        factories.append(
            lambda metrics: ParquetSink(
                settings.output_directory,
                settings.parquet_filename,
                settings.parquet_row_group_size,
                settings.parquet_compression,
                metrics=metrics,
            )
        )
    if settings.kafka_enabled:
        factories.append(lambda metrics: KafkaSink.from_settings(settings, metrics=metrics))
    return factories


class Pipeline:
    """
    Lifecycle controller for one producer run.

    Parameters
    ----------
    settings : Settings
        Validated configuration.
    cancel : threading.Event, optional
        Cancellation token shared with every component; created if omitted.
    metrics : MetricsAggregator, optional
        Defaults to one configured from ``settings``.
    sink_factories : sequence of callables, optional
        Override the sinks derived from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        cancel: Optional[threading.Event] = None,
        metrics: Optional[MetricsAggregator] = None,
        sink_factories: Optional[Sequence[SinkFactory]] = None,
    ) -> None:
        self.settings = settings
        self.cancel = cancel or threading.Event()
        self.metrics = metrics or MetricsAggregator(
            interval=settings.metrics_interval, detailed=settings.metrics_detailed
        )
        self._factories = (
            list(sink_factories)
            if sink_factories is not None
            else default_sink_factories(settings)
        )
        self.state = PipelineState.IDLE
        self.sinks: List[AbstractSink] = []
        self._failures: Dict[str, str] = {}
        self._failures_lock = threading.Lock()

    def _transition(self, state: PipelineState) -> None:
        log.debug("Pipeline state change", extra={"from": self.state.value, "to": state.value})
        self.state = state

    # Startup

    def _validate(self) -> None:
        if not self._factories:
            raise ConfigError(
                "No sink enabled: enable csv or parquet output (matching output.format) or kafka"
            )
        s = self.settings
        if s.csv_active or s.parquet_active:
            try:
                s.output_directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StartupError(
                    f"Cannot create output directory {s.output_directory}: {exc}"
                ) from exc

    def _build_sinks(self) -> List[AbstractSink]:
        built: List[AbstractSink] = []
        try:
            for factory in self._factories:
                built.append(factory(self.metrics))
        except SinkInitError:
            for sink in built:
                try:
                    sink.discard()
                except (SinkCloseError, OSError) as exc:
                    log.warning(
                        "Failed to discard sink during startup abort",
                        extra={"sink": sink.name, "error": str(exc)},
                    )
            raise
        return built

    # Writers

    def _fail_sink(self, sink: AbstractSink, reason: str) -> None:
        with self._failures_lock:
            self._failures.setdefault(sink.name, reason)

    def _drain_into(self, sink: AbstractSink, channel: SinkChannel) -> None:
        try:
            sink.write(channel.drain())
        except Exception as exc:
            # Isolate the failure: stop feeding this sink, keep the others running.
            channel.detach()
            self._fail_sink(sink, str(exc))
            log.exception(
                "Sink writer failed; continuing without it",
                extra={"sink": sink.name, "error": str(exc)},
            )

    def _close_sinks(self) -> None:
        for sink in self.sinks:
            try:
                sink.close()
            except SinkCloseError as exc:
                self.metrics.record_sink_error(sink.name, 1)
                self._fail_sink(sink, str(exc))
                log.error("Sink close failed", extra={"sink": sink.name, "error": str(exc)})

    # Generation

    def _generate(self, generator: TransactionGenerator, distributor: Distributor) -> int:
        s = self.settings

        def emit(record: Any) -> bool:
            return distributor.submit(record, self.cancel)

        try:
            if s.continuous_mode:
                log.info("Generating continuously until cancelled", extra={"workers": 1})
                generated = generator.run_continuous(
                    emit, self.cancel, on_progress=self.metrics.record_generated
                )
            else:
                log.info(
                    "Generating fixed batch",
                    extra={"count": s.producer_message_count, "workers": s.producer_workers},
                )
                generated = generator.generate_batch(
                    s.producer_message_count,
                    s.producer_workers,
                    emit,
                    self.cancel,
                    on_progress=self.metrics.record_generated,
                )
        except GenerationCancelled as exc:
            generated = exc.emitted
        if not self.cancel.is_set() and not distributor.active_channels:
            log.error("Every sink has failed; generation stopped", extra={"generated": generated})
        return generated

    def _drain(self, distributor: Distributor, writers: Sequence[threading.Thread]) -> None:
        self._transition(PipelineState.DRAINING)
        distributor.close()
        for writer in writers:
            writer.join()
        self._close_sinks()

    # Entry point

    def run(self) -> RunSummary:
        """
        Execute the full lifecycle.

        Raises
        ------
        StartupError
            Configuration, reference data or sink construction failed; no
            record was generated.
        GenerationError
            A generator worker failed; sinks are still drained and closed.
        """
        s = self.settings
        self._validate()
        self._transition(PipelineState.CONFIG_VALIDATED)

        reference_data = load_reference_data(ReferencePaths.from_settings(s))
        self._transition(PipelineState.REF_DATA_LOADED)

        self.sinks = self._build_sinks()
        for sink in self.sinks:
            sink.bind_cancel(self.cancel)
            self.metrics.register_sink(sink.name)
        self._transition(PipelineState.SINKS_INITIALIZED)
        log.info("Sinks initialized", extra={"sinks": [sink.name for sink in self.sinks]})

        channels = [SinkChannel(sink.name, s.producer_buffer_size) for sink in self.sinks]
        distributor = Distributor(channels)
        writers = [
            threading.Thread(
                target=self._drain_into, args=(sink, channel), name=f"writer-{sink.name}"
            )
            for sink, channel in zip(self.sinks, channels)
        ]
        for writer in writers:
            writer.start()

        generator = TransactionGenerator(GenerationContext(reference_data), seed=s.producer_seed)
        self._transition(PipelineState.GENERATING)
        self.metrics.reset_clock()
        self.metrics.start()
        generated = 0
        try:
            with profile_block("pipeline") as profile:
                try:
                    generated = self._generate(generator, distributor)
                finally:
                    self._drain(distributor, writers)
        finally:
            self.metrics.stop()
            final = self.metrics.report_final()
            self._transition(PipelineState.CLOSED)

        reports = {
            sink.name: SinkReport(
                name=sink.name,
                accepted=channel.accepted,
                written=final["sinks"].get(sink.name, {}).get("written", sink.count()),
                errors=final["sinks"].get(sink.name, {}).get("errors", sink.errors()),
                failure=self._failures.get(sink.name),
            )
            for sink, channel in zip(self.sinks, channels)
        }
        summary = RunSummary(
            generated=generated,
            duration_seconds=final["wall_seconds"],
            throughput=final["average_rate"],
            assessment=final["assessment"],
            cancelled=self.cancel.is_set(),
            sinks=reports,
            profile=profile,
        )
        log.info("Run complete", extra=summary.as_dict())
        return summary


def install_signal_handlers(cancel: threading.Event) -> Dict[int, Any]:
    """
    Route SIGINT and SIGTERM to ``cancel``.

    Must be called from the main thread. Returns the previous handlers so
    they can be restored with `restore_signal_handlers`.
    """

    def _handle(signum: int, frame: Any) -> None:
        log.info(
            "Shutdown signal received, draining",
            extra={"signal": signal.Signals(signum).name},
        )
        cancel.set()

    previous: Dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


__all__ = [
    "Pipeline",
    "PipelineState",
    "RunSummary",
    "SinkReport",
    "default_sink_factories",
    "install_signal_handlers",
    "restore_signal_handlers",
]
