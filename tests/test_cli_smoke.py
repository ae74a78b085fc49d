from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from pair_trader.config import Settings
from pair_trader.main import cli
from pair_trader.types import CycleResult


class _FakeBot:
    instances: list["_FakeBot"] = []

    def __init__(self, settings: Settings, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        _FakeBot.instances.append(self)

    async def run_once(self) -> list[CycleResult]:
        return [CycleResult(pair="SOL/USDC", status="no_signal", elapsed_ms=1.0)]


def _patch_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = Settings(_env_file=None, journal_dir=tmp_path)
    monkeypatch.setattr("pair_trader.main.get_settings", lambda: settings)


def test_cli_once_smoke(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _patch_settings(monkeypatch, tmp_path)
    monkeypatch.setattr("pair_trader.main.TradingBot", _FakeBot)
    _FakeBot.instances.clear()

    result = CliRunner().invoke(cli, ["once", "--dry-run"])

    assert result.exit_code == 0
    assert [bot.dry_run for bot in _FakeBot.instances] == [True]


def test_cli_status_lists_pairs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _patch_settings(monkeypatch, tmp_path)
    result = CliRunner().invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "SOL/USDC (SOLUSDC)" in result.output
    assert "[OK] Configuration complete" in result.output


def test_cli_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "pair-trader version" in result.output
