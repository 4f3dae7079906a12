"""
Throughput metrics.

`MetricsAggregator` collects the generated total and per-sink written/error
counts from many threads, logs a periodic report from a background thread
and emits a single final report with a performance assessment.

Usage:
    metrics = MetricsAggregator(interval=5.0, sinks=["csv", "parquet"])
    metrics.start()
    ...
    metrics.stop()
    report = metrics.report_final()
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional

from txn_producer.utils.logging import get_logger

log = get_logger(__name__)

# (minimum records/s, band), highest first.
ASSESSMENT_BANDS = (
    (30_000, "excellent"),
    (20_000, "good"),
    (10_000, "moderate"),
)
LOW_BAND = "low"


def assess_throughput(rate: float) -> str:
    for threshold, band in ASSESSMENT_BANDS:
        if rate >= threshold:
            return band
    return LOW_BAND


def format_duration(seconds: float) -> str:
    """Render as ``850ms``, ``12.34s`` or ``2.5m``."""
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    return f"{seconds / 60:.1f}m"


def format_rate(rate: float) -> str:
    """Render as ``850 msg/sec``, ``12.34K msg/sec`` or ``1.20M msg/sec``."""
    if rate >= 1_000_000:
        return f"{rate / 1_000_000:.2f}M msg/sec"
    if rate >= 1_000:
        return f"{rate / 1_000:.2f}K msg/sec"
    return f"{rate:.0f} msg/sec"


def _rate(count: int, seconds: float) -> float:
    return count / seconds if seconds > 0 else 0.0


class MetricsAggregator:
    """
    Thread-safe run counters with periodic and final reporting.

    Parameters
    ----------
    interval : float
        Seconds between periodic reports while started.
    detailed : bool
        Include the per-sink breakdown in reports.
    sinks : iterable of str
        Sink names to report even before they record anything.
    clock : callable
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        interval: float = 5.0,
        detailed: bool = True,
        sinks: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self.detailed = detailed
        self._clock = clock
        self._lock = threading.Lock()
        self._generated = 0
        self._written: Dict[str, int] = {name: 0 for name in sinks}
        self._errors: Dict[str, int] = {name: 0 for name in sinks}
        self._started_at = clock()
        self._last_report_at = self._started_at
        self._last_report_total = 0
        self._final: Optional[Dict[str, Any]] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register_sink(self, name: str) -> None:
        with self._lock:
            self._written.setdefault(name, 0)
            self._errors.setdefault(name, 0)

    def record_generated(self, n: int = 1) -> None:
        with self._lock:
            self._generated += n

    def record_sink_written(self, sink: str, n: int = 1) -> None:
        with self._lock:
            self._written[sink] = self._written.get(sink, 0) + n

    def record_sink_error(self, sink: str, n: int = 1) -> None:
        with self._lock:
            self._errors[sink] = self._errors.get(sink, 0) + n

    def reset_clock(self) -> None:
        """Restart elapsed-time measurement, e.g. when generation begins."""
        with self._lock:
            self._started_at = self._clock()
            self._last_report_at = self._started_at
            self._last_report_total = self._generated

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time copy of every counter."""
        with self._lock:
            return {
                "generated": self._generated,
                "elapsed_seconds": self._clock() - self._started_at,
                "sinks": {
                    name: {"written": self._written[name], "errors": self._errors.get(name, 0)}
                    for name in self._written
                },
            }

    def report_periodic(self) -> Dict[str, Any]:
        """Log and return overall and since-last-report throughput."""
        with self._lock:
            now = self._clock()
            total = self._generated
            elapsed = now - self._started_at
            interval_elapsed = now - self._last_report_at
            interval_count = total - self._last_report_total
            self._last_report_at = now
            self._last_report_total = total
            written = dict(self._written)
            errors = dict(self._errors)

        report: Dict[str, Any] = {
            "total_messages": total,
            "elapsed_seconds": round(elapsed, 3),
            "overall_rate": round(_rate(total, elapsed), 2),
            "interval_rate": round(_rate(interval_count, interval_elapsed), 2),
        }
        log.info(
            "Performance metrics",
            extra={
                **report,
                "elapsed": format_duration(elapsed),
                "overall": format_rate(report["overall_rate"]),
                "current": format_rate(report["interval_rate"]),
            },
        )
        if self.detailed:
            report["sinks"] = {
                name: {"written": written[name], "errors": errors.get(name, 0)} for name in written
            }
            log.info("Writer metrics", extra={"sinks": report["sinks"]})
        return report

    def report_final(self) -> Dict[str, Any]:
        """
        Log the final summary and assessment.

        Emitted once; later calls return the first report without logging.
        """
        with self._lock:
            if self._final is not None:
                return self._final
            elapsed = self._clock() - self._started_at
            total = self._generated
            rate = _rate(total, elapsed)
            self._final = {
                "total_messages": total,
                "wall_seconds": round(elapsed, 3),
                "average_rate": round(rate, 2),
                "assessment": assess_throughput(rate),
                "sinks": {
                    name: {"written": self._written[name], "errors": self._errors.get(name, 0)}
                    for name in self._written
                },
            }
            final = self._final

        log.info(
            "Final summary",
            extra={
                "total_messages": total,
                "total_time": format_duration(elapsed),
                "average_throughput": format_rate(rate),
            },
        )
        if self.detailed:
            log.info("Output breakdown", extra={"sinks": final["sinks"]})
        log.info(
            "Performance assessment",
            extra={"result": final["assessment"], "rate_msg_per_sec": int(rate)},
        )
        return final

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.report_periodic()

    def start(self) -> None:
        """Start the periodic reporting thread. No-op if already running."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="metrics", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the reporting thread and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None


__all__ = [
    "ASSESSMENT_BANDS",
    "MetricsAggregator",
    "assess_throughput",
    "format_duration",
    "format_rate",
]
