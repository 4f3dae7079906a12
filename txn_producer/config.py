"""
Configuration settings for the transaction producer.

Uses Pydantic Settings with flat fields aliased to the environment variable
names (``PRODUCER_WORKERS``, ``CSV_ENABLED``, ``KAFKA_BROKERS`` ...). A YAML
file with nested sections can supply the same values; environment variables
(and a local ``.env``) always take precedence over the file.

Example config.yaml:

    producer:
      message_count: 100000
      workers: 4
    output:
      format: both
      csv:
        enabled: true
    kafka:
      enabled: false
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Type

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from txn_producer.errors import ConfigError
from txn_producer.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

OutputFormat = Literal["csv", "parquet", "both"]
Compression = Literal["none", "snappy", "gzip", "lz4", "zstd"]
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# YAML sections whose env prefix differs from the section name.
_SECTION_PREFIXES = {"logging": "log"}


class Settings(BaseSettings):
    # Producer
    producer_message_count: int = Field(0, ge=0, alias="PRODUCER_MESSAGE_COUNT")
    producer_workers: int = Field(4, gt=0, alias="PRODUCER_WORKERS")
    producer_buffer_size: int = Field(10_000, gt=0, alias="PRODUCER_BUFFER_SIZE")
    producer_seed: Optional[int] = Field(None, alias="PRODUCER_SEED")

    # Output
    output_format: OutputFormat = Field("both", alias="OUTPUT_FORMAT")
    output_directory: Path = Field(Path("output"), alias="OUTPUT_DIRECTORY")

    csv_enabled: bool = Field(True, alias="CSV_ENABLED")
    csv_filename: str = Field("transactions.csv", alias="CSV_FILENAME")
    csv_buffer_size: int = Field(10_000, gt=0, alias="CSV_BUFFER_SIZE")

    parquet_enabled: bool = Field(True, alias="PARQUET_ENABLED")
    parquet_filename: str = Field("transactions.parquet", alias="PARQUET_FILENAME")
    parquet_row_group_size: int = Field(50_000, gt=0, alias="PARQUET_ROW_GROUP_SIZE")
    parquet_compression: Compression = Field("snappy", alias="PARQUET_COMPRESSION")

    # Kafka
    kafka_enabled: bool = Field(False, alias="KAFKA_ENABLED")
    kafka_brokers: str = Field("localhost:9092", alias="KAFKA_BROKERS")
    kafka_topic: str = Field("transactions", alias="KAFKA_TOPIC")
    kafka_compression: Compression = Field("snappy", alias="KAFKA_COMPRESSION")
    kafka_batch_size: int = Field(5_000, gt=0, alias="KAFKA_BATCH_SIZE")
    kafka_flush_frequency: int = Field(100, ge=0, alias="KAFKA_FLUSH_FREQUENCY")
    kafka_async: bool = Field(True, alias="KAFKA_ASYNC")

    # Reference data
    data_currencies: Path = Field(Path("data/currencies.json"), alias="DATA_CURRENCIES")
    data_currency_rates: Path = Field(
        Path("data/currency_rates.json"), alias="DATA_CURRENCY_RATES"
    )
    data_agents: Path = Field(Path("data/agents.json"), alias="DATA_AGENTS")
    data_game_categories: Path = Field(
        Path("data/game_categories.json"), alias="DATA_GAME_CATEGORIES"
    )

    # Metrics
    metrics_interval: float = Field(5.0, gt=0, alias="METRICS_INTERVAL")
    metrics_detailed: bool = Field(True, alias="METRICS_DETAILED")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Constructor values carry the config file layer, so env must win.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("kafka_brokers", mode="before")
    @classmethod
    def _join_brokers(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return ",".join(str(item).strip() for item in value)
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _check_kafka(self) -> "Settings":
        if self.kafka_enabled:
            if not self.kafka_broker_list:
                raise ValueError("kafka brokers cannot be empty when kafka is enabled")
            if not self.kafka_topic:
                raise ValueError("kafka topic cannot be empty when kafka is enabled")
        return self

    @property
    def continuous_mode(self) -> bool:
        return self.producer_message_count == 0

    @property
    def kafka_broker_list(self) -> list[str]:
        return [b.strip() for b in self.kafka_brokers.split(",") if b.strip()]

    @property
    def csv_active(self) -> bool:
        return self.csv_enabled and self.output_format in ("csv", "both")

    @property
    def parquet_active(self) -> bool:
        return self.parquet_enabled and self.output_format in ("parquet", "both")


def _flatten(section: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten nested YAML sections into env-style keys.

    Only the innermost section names the prefix, so ``output.csv.enabled``
    becomes ``CSV_ENABLED`` and ``output.format`` becomes ``OUTPUT_FORMAT``.
    """
    flat: Dict[str, Any] = {}
    for key, value in section.items():
        if isinstance(value, dict):
            flat.update(_flatten(value, _SECTION_PREFIXES.get(key, key)))
        else:
            name = f"{prefix}_{key}" if prefix else key
            flat[name.upper()] = value
    return flat


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return _flatten(raw)


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(item) for item in error["loc"]) or "settings"
        parts.append(f"{field}: {error['msg']}")
    return "; ".join(parts)


def load_settings(
    config_path: Path | str | None = DEFAULT_CONFIG_PATH, **overrides: Any
) -> Settings:
    """
    Load settings from an optional YAML file, then apply environment overrides.

    A missing file is not an error: defaults plus environment are used and a
    warning is logged. ``overrides`` (already-validated CLI flags, keyed by
    field name) are applied last and win over both the file and the
    environment.

    Raises
    ------
    ConfigError
        If the file cannot be parsed or any value fails validation.
    """
    file_values: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            file_values = _read_config_file(path)
        else:
            log.warning(
                "Config file not found, using defaults with environment overrides",
                extra={"config_path": str(path)},
            )

    try:
        settings = Settings(**file_values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {_describe_errors(exc)}") from exc
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings loaded from the default config path.
    """
    return load_settings(DEFAULT_CONFIG_PATH)


__all__ = ["Settings", "load_settings", "get_settings", "DEFAULT_CONFIG_PATH"]
