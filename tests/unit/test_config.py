from __future__ import annotations

from pathlib import Path

import pytest

from txn_producer import config
from txn_producer.config import Settings, load_settings
from txn_producer.errors import ConfigError

YAML_CONFIG = """
producer:
  message_count: 5000
  workers: 8
  seed: 99
output:
  format: csv
  directory: /tmp/producer-out
  csv:
    enabled: true
    filename: bets.csv
  parquet:
    compression: zstd
kafka:
  enabled: true
  brokers:
    - k1:9092
    - k2:9092
  topic: bets
  async: false
metrics:
  interval: 2
  detailed: false
logging:
  level: debug
  json: false
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file(tmp_path: Path):
    settings = load_settings(tmp_path / "missing.yaml")

    assert settings.producer_message_count == 0
    assert settings.continuous_mode
    assert settings.producer_workers == 4
    assert settings.producer_buffer_size == 10_000
    assert settings.output_format == "both"
    assert settings.csv_active and settings.parquet_active
    assert not settings.kafka_enabled
    assert settings.parquet_row_group_size == 50_000
    assert settings.kafka_flush_frequency == 100
    assert settings.metrics_interval == 5
    assert settings.log_level == "INFO"


def test_yaml_sections_map_onto_settings(tmp_path: Path):
    settings = load_settings(_write(tmp_path, YAML_CONFIG))

    assert settings.producer_message_count == 5000
    assert settings.producer_workers == 8
    assert settings.producer_seed == 99
    assert settings.output_format == "csv"
    assert settings.output_directory == Path("/tmp/producer-out")
    assert settings.csv_filename == "bets.csv"
    assert settings.parquet_compression == "zstd"
    assert settings.csv_active and not settings.parquet_active
    assert settings.kafka_enabled
    assert settings.kafka_brokers == "k1:9092,k2:9092"
    assert settings.kafka_broker_list == ["k1:9092", "k2:9092"]
    assert settings.kafka_topic == "bets"
    assert settings.kafka_async is False
    assert settings.metrics_interval == 2
    assert settings.metrics_detailed is False
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False


def test_environment_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PRODUCER_WORKERS", "2")
    monkeypatch.setenv("KAFKA_TOPIC", "from-env")

    settings = load_settings(_write(tmp_path, YAML_CONFIG))

    assert settings.producer_workers == 2
    assert settings.kafka_topic == "from-env"
    assert settings.producer_message_count == 5000


def test_explicit_overrides_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PRODUCER_WORKERS", "2")

    settings = load_settings(
        _write(tmp_path, YAML_CONFIG), producer_workers=16, producer_message_count=10
    )

    assert settings.producer_workers == 16
    assert settings.producer_message_count == 10


@pytest.mark.parametrize(
    "yaml_text,field",
    [
        ("producer:\n  workers: 0\n", "PRODUCER_WORKERS"),
        ("producer:\n  message_count: -1\n", "PRODUCER_MESSAGE_COUNT"),
        ("output:\n  format: xml\n", "OUTPUT_FORMAT"),
        ("output:\n  parquet:\n    compression: brotli\n", "PARQUET_COMPRESSION"),
        ("logging:\n  level: loud\n", "LOG_LEVEL"),
    ],
)
def test_invalid_values_raise_config_error_naming_field(tmp_path: Path, yaml_text, field):
    with pytest.raises(ConfigError, match=field):
        load_settings(_write(tmp_path, yaml_text))


def test_kafka_enabled_requires_brokers(tmp_path: Path):
    text = "kafka:\n  enabled: true\n  brokers: ''\n"
    with pytest.raises(ConfigError, match="brokers"):
        load_settings(_write(tmp_path, text))


def test_unparsable_yaml_raises_config_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="parse"):
        load_settings(_write(tmp_path, "producer: [unclosed\n"))


def test_non_mapping_yaml_raises_config_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="mapping"):
        load_settings(_write(tmp_path, "- just\n- a list\n"))


def test_flatten_uses_innermost_section_prefix():
    flat = config._flatten({"output": {"format": "csv", "csv": {"enabled": False}}})
    assert flat == {"OUTPUT_FORMAT": "csv", "CSV_ENABLED": False}


def test_get_settings_is_cached(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    first = config.get_settings()
    assert config.get_settings() is first
    assert isinstance(first, Settings)
