from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from pair_trader.config import MonitoringConfig, RiskConfig, Settings, TradingPair


def test_risk_config_is_immutable() -> None:
    risk = RiskConfig()
    with pytest.raises(ValidationError):
        risk.max_position_percentage = 0.5  # type: ignore[misc]


def test_settings_are_immutable(tmp_path: Path) -> None:
    settings = Settings(_env_file=None, journal_dir=tmp_path)
    with pytest.raises(ValidationError):
        settings.risk = RiskConfig(max_position_percentage=0.5)  # type: ignore[misc]


def test_nested_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RISK__STOP_LOSS_PERCENTAGE", "0.01")
    monkeypatch.setenv("MONITORING__EMA_PERIODS", "[5, 50]")
    monkeypatch.setenv("PAIRS", '[{"name": "BTC/USDT", "base": "BTC", "quote": "USDT"}]')
    monkeypatch.setenv("JOURNAL_DIR", str(tmp_path))

    settings = Settings(_env_file=None)

    assert settings.risk.stop_loss_percentage == 0.01
    assert settings.monitoring.ema_periods == (5, 50)
    assert [p.symbol for p in settings.pairs] == ["BTCUSDT"]
    assert settings.journal_dir == tmp_path


def test_duplicate_pairs_rejected(tmp_path: Path) -> None:
    pair = TradingPair(name="SOL/USDC", base="SOL", quote="USDC")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, journal_dir=tmp_path, pairs=[pair, pair])


def test_validate_for_run_needs_enabled_pair(tmp_path: Path) -> None:
    disabled = TradingPair(name="SOL/USDC", base="SOL", quote="USDC", enabled=False)
    assert Settings(_env_file=None, journal_dir=tmp_path).validate_for_run() == []
    assert Settings(_env_file=None, journal_dir=tmp_path, pairs=[disabled]).validate_for_run() == ["PAIRS"]


def test_history_length_covers_longest_indicator() -> None:
    assert MonitoringConfig().max_period == 40
    assert MonitoringConfig(ema_periods=(9, 100)).max_period == 100
