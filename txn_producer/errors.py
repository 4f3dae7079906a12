"""
Error taxonomy for the transaction producer.

Startup errors abort the run before any record is generated; sink errors are
isolated to the sink that raised them; generation errors stop the generator.
"""

from __future__ import annotations

from typing import Optional


class ProducerError(Exception):
    """Root of every error raised by the producer."""


class StartupError(ProducerError):
    """Fatal error raised before generation starts (non-zero exit)."""


class ConfigError(StartupError):
    """Configuration could not be loaded or failed validation."""


class DataLoadError(StartupError):
    """A reference table is missing, unparsable or empty."""

    def __init__(self, table: str, path: Optional[str], reason: str) -> None:
        self.table = table
        self.path = path
        self.reason = reason
        location = f" ({path})" if path else ""
        super().__init__(f"Failed to load {table}{location}: {reason}")


class SinkInitError(StartupError):
    """An enabled sink could not be constructed."""

    def __init__(self, sink: str, reason: str) -> None:
        self.sink = sink
        super().__init__(f"Failed to initialize {sink} sink: {reason}")


class SinkError(ProducerError):
    """Base class for runtime sink failures."""


class SinkWriteError(SinkError):
    """A batched write (flush) failed; the sink stops."""


class SinkCloseError(SinkError):
    """Releasing a sink's resources failed."""


class GenerationError(ProducerError):
    """Record generation failed."""


class GenerationCancelled(GenerationError):
    """Generation stopped early because the cancellation token was set."""

    def __init__(self, emitted: int) -> None:
        self.emitted = emitted
        super().__init__(f"Generation cancelled after {emitted} records")


__all__ = [
    "ProducerError",
    "StartupError",
    "ConfigError",
    "DataLoadError",
    "SinkInitError",
    "SinkError",
    "SinkWriteError",
    "SinkCloseError",
    "GenerationError",
    "GenerationCancelled",
]
