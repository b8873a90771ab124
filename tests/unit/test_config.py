from __future__ import annotations

from pathlib import Path

import pytest

from perpquant.backtest.types import StrategyMode
from perpquant.core.config import BacktestDefaults, Config, SignalConfig
from perpquant.core.exceptions import ConfigError
from perpquant.core.time import HOUR_MS
from perpquant.strategy.perp_signal import SignalWeights


def test_repo_config_loads_balanced_preset(test_config: Config) -> None:
    assert test_config.preset == "balanced"
    assert test_config.backtest.enter_abs_z == 2.0
    assert test_config.logging.level == "INFO"


def test_config_loads_from_yaml_and_preset_chain(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    cfg_dir = tmp_path / "config"
    presets = cfg_dir / "presets"
    presets.mkdir(parents=True)

    (cfg_dir / "default.yaml").write_text("preset: conservative\nbacktest:\n  exit_abs_z: 0.3\n")
    (presets / "conservative.yaml").write_text("backtest:\n  enter_abs_z: 3.0\n  exit_abs_z: 1.0\n")

    cfg = Config.from_yaml(cfg_dir / "default.yaml")
    assert cfg.preset == "conservative"
    assert cfg.backtest.enter_abs_z == 3.0
    # default.yaml wins over the preset.
    assert cfg.backtest.exit_abs_z == 0.3


def test_from_preset_uses_repo_presets(test_config: Config) -> None:
    repo_root = test_config.config_dir.parent
    cfg = Config.from_preset("conservative", repo_root=repo_root)
    assert cfg.preset == "conservative"
    assert cfg.backtest.min_crowding == 1.0


def test_config_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERPQUANT_BACKTEST__STRATEGY", "momentum")
    cfg = Config()  # BaseSettings reads env
    assert cfg.backtest.strategy == "momentum"


def test_config_from_yaml_raises_if_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        Config.from_yaml(tmp_path / "missing.yaml")


def test_config_from_yaml_wraps_validation_errors(tmp_path: Path) -> None:
    p = tmp_path / "default.yaml"
    p.write_text("backtest:\n  trade_notional: -5\n")
    with pytest.raises(ConfigError):
        Config.from_yaml(p)


def test_backtest_defaults_derive_interval_dependent_steps() -> None:
    bt = BacktestDefaults().to_backtest_config(HOUR_MS)
    assert bt.z_lookback_steps == 24
    assert bt.max_hold_steps == 24 * 7
    assert bt.strategy is StrategyMode.CONTRARIAN

    bt4h = BacktestDefaults(max_hold_steps=10).to_backtest_config(4 * HOUR_MS)
    assert bt4h.z_lookback_steps == 6
    assert bt4h.max_hold_steps == 10
    bt4h.validate()


def test_backtest_defaults_reject_bad_values() -> None:
    with pytest.raises(ValueError):
        BacktestDefaults(vol_window_returns=1)
    with pytest.raises(ValueError):
        BacktestDefaults(exit_abs_z=-1)


def test_signal_config_to_weights() -> None:
    w = SignalConfig(funding_weight=0.5).to_weights()
    assert isinstance(w, SignalWeights)
    assert w.funding_weight == 0.5
    assert w.crowding_max == 2.0

    with pytest.raises(ValueError):
        SignalConfig(crowding_min=3.0, crowding_max=2.0)


def test_env_overrides_yaml_values(test_config: Config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERPQUANT_BACKTEST__ENTER_ABS_Z", "9.5")
    monkeypatch.setenv("PERPQUANT_LOGGING__LEVEL", "DEBUG")

    cfg = Config.from_yaml(test_config.config_dir / "default.yaml")
    assert cfg.backtest.enter_abs_z == 9.5
    assert cfg.logging.level == "DEBUG"
    # Keys the env leaves alone still come from the balanced preset.
    assert cfg.backtest.exit_abs_z == 0.5
    assert cfg.backtest.slippage_bps == 2.0


def test_env_overrides_preset_values(test_config: Config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERPQUANT_BACKTEST__MIN_CROWDING", "0.4")

    cfg = Config.from_preset("conservative", repo_root=test_config.config_dir.parent)
    assert cfg.backtest.min_crowding == 0.4
    assert cfg.backtest.enter_abs_z == 2.5


def test_invalid_env_value_raises_config_error(test_config: Config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERPQUANT_BACKTEST__TRADE_NOTIONAL", "-1")
    with pytest.raises(ConfigError):
        Config.from_yaml(test_config.config_dir / "default.yaml")
