from __future__ import annotations

import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from txn_producer import main as cli

runner = CliRunner()

RUN_COUNT = 50


@pytest.fixture(autouse=True)
def reset_root_handlers():
    """
    Drop handlers bound to CliRunner's temporary stdout after each test.
    """
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, reference_dir: Path) -> Path:
    output = tmp_path / "cli-output"
    monkeypatch.setenv("OUTPUT_DIRECTORY", str(output))
    monkeypatch.setenv("OUTPUT_FORMAT", "csv")
    monkeypatch.setenv("METRICS_INTERVAL", "60")
    monkeypatch.setenv("DATA_CURRENCIES", str(reference_dir / "currencies.json"))
    monkeypatch.setenv("DATA_CURRENCY_RATES", str(reference_dir / "currency_rates.json"))
    monkeypatch.setenv("DATA_AGENTS", str(reference_dir / "agents.json"))
    monkeypatch.setenv("DATA_GAME_CATEGORIES", str(reference_dir / "game_categories.json"))
    return output


def test_info_prints_effective_configuration(tmp_path: Path):
    result = runner.invoke(cli.app, ["info", "--config", str(tmp_path / "none.yaml")])

    assert result.exit_code == 0
    assert "count=continuous" in result.output
    assert "csv=" in result.output
    assert "parquet=" in result.output


def test_run_writes_requested_count(cli_env: Path, tmp_path: Path):
    result = runner.invoke(
        cli.app,
        [
            "run",
            "--config",
            str(tmp_path / "none.yaml"),
            "--count",
            str(RUN_COUNT),
            "--workers",
            "2",
            "--console-logs",
        ],
    )

    assert result.exit_code == 0, result.output
    lines = (cli_env / "transactions.csv").read_text(encoding="utf-8").splitlines()
    assert len(lines) == RUN_COUNT + 1
    assert "Transaction Producer Results" in result.output


def test_run_with_invalid_config_exits_1(cli_env: Path, tmp_path: Path):
    config = tmp_path / "bad.yaml"
    config.write_text("producer:\n  workers: 0\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["run", "--config", str(config), "--console-logs"])

    assert result.exit_code == 1


def test_run_with_missing_reference_data_exits_1(
    cli_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("DATA_AGENTS", str(tmp_path / "nope.json"))

    result = runner.invoke(
        cli.app,
        ["run", "--config", str(tmp_path / "none.yaml"), "--count", "5", "--console-logs"],
    )

    assert result.exit_code == 1
    assert not (cli_env / "transactions.csv").exists()


def test_run_rejects_negative_count(tmp_path: Path):
    result = runner.invoke(cli.app, ["run", "--count", "-1"])
    assert result.exit_code != 0


def test_main_exits_130_on_keyboard_interrupt(monkeypatch: pytest.MonkeyPatch):
    def _interrupt() -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "app", _interrupt)

    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 130
