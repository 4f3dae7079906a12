from __future__ import annotations

import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from txn_producer.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from txn_producer.errors import ConfigError, GenerationError, StartupError
from txn_producer.pipeline import Pipeline, install_signal_handlers, restore_signal_handlers
from txn_producer.reporter import print_summary
from txn_producer.utils.logging import configure_logging, get_logger

log = get_logger(__name__)

app = typer.Typer(help="Concurrent transaction producer CLI.")


class LogLevel(str, Enum):
    debug = "DEBUG"
    info = "INFO"
    warning = "WARNING"
    error = "ERROR"


def _load_or_exit(config: Path, **overrides: Any) -> Settings:
    try:
        return load_settings(config, **overrides)
    except ConfigError as exc:
        log.error("Configuration rejected", extra={"config_path": str(config), "error": str(exc)})
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _describe_sinks(settings: Settings) -> str:
    sinks = []
    if settings.csv_active:
        sinks.append(f"csv={settings.output_directory / settings.csv_filename}")
    if settings.parquet_active:
        sinks.append(
            f"parquet={settings.output_directory / settings.parquet_filename}"
            f" ({settings.parquet_compression})"
        )
    if settings.kafka_enabled:
        sinks.append(f"kafka={settings.kafka_brokers}/{settings.kafka_topic}")
    return ", ".join(sinks) or "none"


@app.command()
def info(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="YAML config file."),
) -> None:
    """
    Show effective configuration values.
    """
    settings = _load_or_exit(config)
    count = "continuous" if settings.continuous_mode else f"{settings.producer_message_count:,}"
    typer.echo(
        f"count={count} workers={settings.producer_workers} "
        f"buffer={settings.producer_buffer_size} seed={settings.producer_seed}"
    )
    typer.echo(f"sinks: {_describe_sinks(settings)}")
    typer.echo(
        f"metrics: interval={settings.metrics_interval}s detailed={settings.metrics_detailed} | "
        f"logging: level={settings.log_level} json={settings.log_json}"
    )


@app.command()
def run(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="YAML config file."),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=0,
        help="Records to generate; 0 runs until interrupted (default from settings).",
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Generator worker threads (default from settings)."
    ),
    log_level: Optional[LogLevel] = typer.Option(
        None, "--log-level", case_sensitive=False, help="Override the configured log level."
    ),
    json_logs: Optional[bool] = typer.Option(
        None, "--json-logs/--console-logs", help="Override the configured log format."
    ),
) -> None:
    """
    Generate transactions and write them to every enabled sink.
    """
    configure_logging(
        level=log_level.value if log_level else "INFO",
        json_logs=True if json_logs is None else json_logs,
    )

    overrides: Dict[str, Any] = {}
    if count is not None:
        overrides["producer_message_count"] = count
    if workers is not None:
        overrides["producer_workers"] = workers
    if log_level is not None:
        overrides["log_level"] = log_level.value
    if json_logs is not None:
        overrides["log_json"] = json_logs

    settings = _load_or_exit(config, **overrides)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    pipeline = Pipeline(settings)
    previous = install_signal_handlers(pipeline.cancel)
    try:
        summary = pipeline.run()
    except StartupError as exc:
        log.error("Startup failed", extra={"error": str(exc), "state": pipeline.state.value})
        typer.echo(f"Startup failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except GenerationError as exc:
        log.error("Generation failed", extra={"error": str(exc)})
        typer.echo(f"Generation failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        restore_signal_handlers(previous)

    print_summary(summary)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
