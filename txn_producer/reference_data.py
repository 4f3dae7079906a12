"""
Reference data loading.

Reads the four static JSON tables (currencies, currency rates, agents, game
categories), validates each row straight into its typed model and builds the
immutable `ReferenceData` indices used by the generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from txn_producer.domain.models import (
    Agent,
    Currency,
    CurrencyRate,
    GameCategory,
    ReferenceData,
)
from txn_producer.errors import DataLoadError
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from txn_producer.config import Settings

log = get_logger(__name__)

RowT = TypeVar("RowT", bound=BaseModel)


@dataclass(frozen=True)
class ReferencePaths:
    currencies: Path
    currency_rates: Path
    agents: Path
    game_categories: Path

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ReferencePaths":
        return cls(
            currencies=Path(settings.data_currencies),
            currency_rates=Path(settings.data_currency_rates),
            agents=Path(settings.data_agents),
            game_categories=Path(settings.data_game_categories),
        )

    @classmethod
    def from_directory(cls, directory: Path | str) -> "ReferencePaths":
        base = Path(directory)
        return cls(
            currencies=base / "currencies.json",
            currency_rates=base / "currency_rates.json",
            agents=base / "agents.json",
            game_categories=base / "game_categories.json",
        )


def _load_table(table: str, path: Path, model: Type[RowT]) -> List[RowT]:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise DataLoadError(table, str(path), exc.strerror or str(exc)) from exc

    try:
        rows = TypeAdapter(List[model]).validate_json(raw)  # type: ignore[valid-type]
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(item) for item in first["loc"])
        detail = f"{first['msg']} at {where}" if where else first["msg"]
        raise DataLoadError(table, str(path), detail) from exc

    if not rows:
        raise DataLoadError(table, str(path), "table is empty")
    return rows


def _check_rate_currencies(
    rates: Sequence[CurrencyRate], currencies: Sequence[Currency], path: Path
) -> None:
    known = {c.id for c in currencies}
    for rate in rates:
        for currency_id in (rate.currency_from_id, rate.currency_to_id):
            if currency_id not in known:
                raise DataLoadError(
                    "currency rates",
                    str(path),
                    f"rate {rate.id} references unknown currency id {currency_id}",
                )


def load_reference_data(paths: ReferencePaths) -> ReferenceData:
    """
    Load and index every reference table.

    Raises
    ------
    DataLoadError
        If a table is missing, malformed, empty, or a rate points at a
        currency that is not in the currency table.
    """
    currencies = _load_table("currencies", paths.currencies, Currency)
    rates = _load_table("currency rates", paths.currency_rates, CurrencyRate)
    agents = _load_table("agents", paths.agents, Agent)
    categories = _load_table("game categories", paths.game_categories, GameCategory)

    _check_rate_currencies(rates, currencies, paths.currency_rates)

    data = ReferenceData.build(currencies, rates, agents, categories)
    log.info(
        "Reference data loaded",
        extra={
            "currencies": len(data.currencies),
            "currency_rates": len(data.currency_rates),
            "agents": len(data.agents),
            "master_agents": len(data.master_agent_ids),
            "game_categories": len(data.game_categories),
        },
    )
    return data


__all__ = ["ReferencePaths", "load_reference_data"]
