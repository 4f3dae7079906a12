"""
Domain models for the transaction producer.

`Transaction` is the generated record consumed by every sink. The reference
row models mirror the JSON tables loaded at startup; `ReferenceData` bundles
them with the lookup indices the generator needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from pydantic import BaseModel, Field

# Column order shared by the CSV header, the Parquet schema and the JSON payload.
TRANSACTION_FIELDS: Tuple[str, ...] = (
    "id",
    "external_transaction_id",
    "vendor_bet_id",
    "round_id",
    "vendor_id",
    "vendor_code",
    "vendor_line_id",
    "game_category_id",
    "house_id",
    "master_agent_id",
    "agent_id",
    "currency_id",
    "currency_code",
    "bet_amount",
    "win_amount",
    "win_loss",
    "settled_at",
)

INTEGER_FIELDS = frozenset(
    {
        "vendor_id",
        "vendor_line_id",
        "game_category_id",
        "house_id",
        "master_agent_id",
        "agent_id",
        "currency_id",
    }
)

_FROZEN = {"frozen": True, "populate_by_name": True}


class Transaction(BaseModel):
    """
    One settled bet.

    Monetary fields are fixed-point strings with six fractional digits, so
    every sink serializes exactly the same text.
    """

    id: str = Field(..., description="Internal transaction ID, TXN-<date>-<seq>.")
    external_transaction_id: str
    vendor_bet_id: str
    round_id: str
    vendor_id: int
    vendor_code: str
    vendor_line_id: int
    game_category_id: int
    house_id: int
    master_agent_id: int
    agent_id: int
    currency_id: int
    currency_code: str
    bet_amount: str
    win_amount: str
    win_loss: str
    settled_at: str = Field(..., description="Settlement time, ISO-8601.")

    model_config = _FROZEN

    @property
    def sequence(self) -> int:
        """Sequence number embedded in the internal ID."""
        return int(self.id.rsplit("-", 1)[1])

    def to_row(self) -> Tuple[Any, ...]:
        """Field values in `TRANSACTION_FIELDS` order."""
        return tuple(getattr(self, name) for name in TRANSACTION_FIELDS)


class Currency(BaseModel):
    id: int
    code: str
    name: str

    model_config = _FROZEN


class CurrencyRate(BaseModel):
    id: int
    currency_from: str
    currency_from_id: int
    currency_to: str
    currency_to_id: int
    rate: Decimal
    effective_from: int
    status: int

    model_config = _FROZEN


class Agent(BaseModel):
    id: int
    sas_entity_id: int
    master_agent_id: int
    status: int
    notification_enabled: int = 0

    model_config = _FROZEN


class GameCategory(BaseModel):
    id: int
    code: str
    name: str
    status: int

    model_config = _FROZEN


@dataclass(frozen=True)
class ReferenceData:
    """
    Immutable reference tables plus derived indices.

    Built once by `load_reference_data` (or `ReferenceData.build`) and shared
    by every generator worker without locking.
    """

    currencies: Tuple[Currency, ...]
    currency_rates: Tuple[CurrencyRate, ...]
    agents: Tuple[Agent, ...]
    game_categories: Tuple[GameCategory, ...]
    currency_by_id: Mapping[int, Currency]
    rates_by_currency_id: Mapping[int, Tuple[CurrencyRate, ...]]
    agents_by_master_id: Mapping[int, Tuple[Agent, ...]]
    master_agent_ids: Tuple[int, ...]

    @classmethod
    def build(
        cls,
        currencies: Tuple[Currency, ...] | list[Currency],
        currency_rates: Tuple[CurrencyRate, ...] | list[CurrencyRate],
        agents: Tuple[Agent, ...] | list[Agent],
        game_categories: Tuple[GameCategory, ...] | list[GameCategory],
    ) -> "ReferenceData":
        rates: Dict[int, list[CurrencyRate]] = {}
        for rate in currency_rates:
            rates.setdefault(rate.currency_from_id, []).append(rate)

        by_master: Dict[int, list[Agent]] = {}
        for agent in agents:
            by_master.setdefault(agent.master_agent_id, []).append(agent)

        return cls(
            currencies=tuple(currencies),
            currency_rates=tuple(currency_rates),
            agents=tuple(agents),
            game_categories=tuple(game_categories),
            currency_by_id=MappingProxyType({c.id: c for c in currencies}),
            rates_by_currency_id=MappingProxyType({k: tuple(v) for k, v in rates.items()}),
            agents_by_master_id=MappingProxyType({k: tuple(v) for k, v in by_master.items()}),
            master_agent_ids=tuple(sorted(by_master)),
        )


__all__ = [
    "TRANSACTION_FIELDS",
    "INTEGER_FIELDS",
    "Transaction",
    "Currency",
    "CurrencyRate",
    "Agent",
    "GameCategory",
    "ReferenceData",
]
