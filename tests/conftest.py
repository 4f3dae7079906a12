"""
Pytest configuration for the transaction producer.

Provides fixtures for:
- Isolation from the caller's environment (settings aliases, cached settings)
- Small in-memory and on-disk reference data sets
- Settings pointing every output at a temporary directory
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from txn_producer.config import Settings, get_settings
from txn_producer.domain.models import Agent, Currency, CurrencyRate, GameCategory, ReferenceData
from txn_producer.reference_data import ReferencePaths

CURRENCY_ROWS = [
    {"id": 1, "code": "USD", "name": "US Dollar"},
    {"id": 2, "code": "EUR", "name": "Euro"},
    {"id": 3, "code": "JPY", "name": "Japanese Yen"},
    {"id": 4, "code": "BTC", "name": "Bitcoin"},
]
RATE_ROWS = [
    {
        "id": index,
        "currency_from": row["code"],
        "currency_from_id": row["id"],
        "currency_to": "USD",
        "currency_to_id": 1,
        "rate": rate,
        "effective_from": 1735689600,
        "status": 1,
    }
    for index, (row, rate) in enumerate(
        zip(CURRENCY_ROWS, ["1", "1.08", "0.0067", "64000"]), start=1
    )
]
AGENT_ROWS = [
    {"id": 1, "sas_entity_id": 501, "master_agent_id": 10, "status": 1, "notification_enabled": 1},
    {"id": 2, "sas_entity_id": 502, "master_agent_id": 10, "status": 1, "notification_enabled": 0},
    {"id": 3, "sas_entity_id": 503, "master_agent_id": 20, "status": 1, "notification_enabled": 0},
    {"id": 4, "sas_entity_id": 504, "master_agent_id": 30, "status": 1, "notification_enabled": 1},
]
CATEGORY_ROWS = [
    {"id": 1, "code": "SLOTS", "name": "Slots", "status": 1},
    {"id": 2, "code": "LIVE_CASINO", "name": "Live Casino", "status": 1},
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Remove every settings alias from the environment and reset cached settings.
    """
    for field in Settings.model_fields.values():
        if field.alias:
            monkeypatch.delenv(field.alias, raising=False)
    get_settings.cache_clear()


@pytest.fixture
def reference_data() -> ReferenceData:
    return ReferenceData.build(
        [Currency(**row) for row in CURRENCY_ROWS],
        [CurrencyRate(**{**row, "rate": Decimal(row["rate"])}) for row in RATE_ROWS],
        [Agent(**row) for row in AGENT_ROWS],
        [GameCategory(**row) for row in CATEGORY_ROWS],
    )


@pytest.fixture
def reference_dir(tmp_path: Path) -> Path:
    """
    Write the four reference tables as JSON files and return their directory.
    """
    directory = tmp_path / "data"
    directory.mkdir()
    tables = {
        "currencies.json": CURRENCY_ROWS,
        "currency_rates.json": RATE_ROWS,
        "agents.json": AGENT_ROWS,
        "game_categories.json": CATEGORY_ROWS,
    }
    for filename, rows in tables.items():
        (directory / filename).write_text(json.dumps(rows), encoding="utf-8")
    return directory


@pytest.fixture
def make_settings(tmp_path: Path, reference_dir: Path) -> Callable[..., Settings]:
    """
    Factory for settings writing into ``tmp_path/output`` with test reference data.

    Keyword arguments override fields by name.
    """
    paths = ReferencePaths.from_directory(reference_dir)

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "producer_message_count": 100,
            "producer_workers": 4,
            "producer_buffer_size": 64,
            "producer_seed": 7,
            "output_directory": tmp_path / "output",
            "kafka_enabled": False,
            "data_currencies": paths.currencies,
            "data_currency_rates": paths.currency_rates,
            "data_agents": paths.agents,
            "data_game_categories": paths.game_categories,
            "metrics_interval": 60.0,
            "log_json": False,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
