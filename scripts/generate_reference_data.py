"""
Reference data generation script for the transaction producer.

Writes the four JSON tables the producer loads at startup (currencies,
currency rates, agents, game categories) with deterministic pseudo-random
agent hierarchies and rates.
"""

from __future__ import annotations

import json
import random
import sys
import time
from decimal import Decimal
from pathlib import Path
from typing import List, Sequence

import typer
from pydantic import BaseModel

from txn_producer.domain.models import Agent, Currency, CurrencyRate, GameCategory

app = typer.Typer(help="Generate the static reference tables used by the producer.")

CURRENCIES = [
    ("USD", "US Dollar", Decimal("1")),
    ("EUR", "Euro", Decimal("1.08")),
    ("GBP", "British Pound", Decimal("1.27")),
    ("JPY", "Japanese Yen", Decimal("0.0067")),
    ("CNY", "Chinese Yuan", Decimal("0.14")),
    ("THB", "Thai Baht", Decimal("0.028")),
    ("BTC", "Bitcoin", Decimal("64000")),
    ("ETH", "Ether", Decimal("3100")),
]

GAME_CATEGORIES = [
    ("SLOTS", "Slots"),
    ("LIVE_CASINO", "Live Casino"),
    ("TABLE", "Table Games"),
    ("POKER", "Poker"),
    ("SPORTS", "Sports Betting"),
    ("FISHING", "Fishing Games"),
    ("LOTTERY", "Lottery"),
]


def _currencies() -> List[Currency]:
    return [
        Currency(id=index, code=code, name=name)
        for index, (code, name, _) in enumerate(CURRENCIES, start=1)
    ]


def _currency_rates(
    currencies: Sequence[Currency], rng: random.Random, effective_from: int
) -> List[CurrencyRate]:
    """One rate per currency into USD, jittered by up to one percent."""
    usd = next(c for c in currencies if c.code == "USD")
    usd_values = {code: value for code, _, value in CURRENCIES}
    rates = []
    for index, currency in enumerate(currencies, start=1):
        jitter = Decimal(str(round(rng.uniform(0.99, 1.01), 4)))
        base = usd_values[currency.code]
        rate = base if currency.code == "USD" else (base * jitter).quantize(Decimal("0.000001"))
        rates.append(
            CurrencyRate(
                id=index,
                currency_from=currency.code,
                currency_from_id=currency.id,
                currency_to=usd.code,
                currency_to_id=usd.id,
                rate=rate,
                effective_from=effective_from,
                status=1,
            )
        )
    return rates


def _agents(count: int, master_agents: int, rng: random.Random) -> List[Agent]:
    master_ids = [1000 + i for i in range(1, master_agents + 1)]
    agents = []
    for index in range(1, count + 1):
        # The first agents cover every master agent once.
        if index <= len(master_ids):
            master_id = master_ids[index - 1]
        else:
            master_id = rng.choice(master_ids)
        agents.append(
            Agent(
                id=index,
                sas_entity_id=rng.randint(10_000, 99_999),
                master_agent_id=master_id,
                status=1,
                notification_enabled=rng.choice([0, 1]),
            )
        )
    return agents


def _game_categories() -> List[GameCategory]:
    return [
        GameCategory(id=index, code=code, name=name, status=1)
        for index, (code, name) in enumerate(GAME_CATEGORIES, start=1)
    ]


def _write_table(path: Path, rows: Sequence[BaseModel]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump([row.model_dump(mode="json") for row in rows], f, indent=2)
        f.write("\n")


@app.command()
def main(
    output_dir: Path = typer.Option(
        Path("data"),
        "--output-dir",
        "-o",
        help="Directory receiving the JSON tables.",
    ),
    agents: int = typer.Option(
        50,
        "--agents",
        "-a",
        min=1,
        help="Number of agents to generate.",
    ),
    master_agents: int = typer.Option(
        5,
        "--master-agents",
        "-m",
        min=1,
        help="Number of master agents the agents are spread across.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
) -> None:
    """
    Generate currencies, currency rates, agents and game categories as JSON.
    """
    if master_agents > agents:
        typer.echo("--master-agents cannot exceed --agents.", err=True)
        raise typer.Exit(code=1)

    start = time.perf_counter()
    rng = random.Random(seed)
    output_dir.mkdir(parents=True, exist_ok=True)

    currencies = _currencies()
    tables = {
        "currencies.json": currencies,
        "currency_rates.json": _currency_rates(currencies, rng, effective_from=int(time.time())),
        "agents.json": _agents(agents, master_agents, rng),
        "game_categories.json": _game_categories(),
    }
    for filename, rows in tables.items():
        path = output_dir / filename
        _write_table(path, rows)
        typer.echo(f"Wrote {len(rows):,} rows -> {path}")

    typer.echo(f"Reference data generated in {time.perf_counter() - start:.2f}s (seed={seed})")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
