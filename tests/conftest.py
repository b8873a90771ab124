from __future__ import annotations

import shutil
import sys
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from perpquant.backtest.types import BacktestConfig, CandlePoint, StrategyMode  # noqa: E402
from perpquant.core.config import Config  # noqa: E402
from perpquant.core.time import HOUR_MS  # noqa: E402

from tests.unit._factories import REVERSION_PRICES, make_candles  # noqa: E402


@pytest.fixture()
def reversion_candles() -> list[CandlePoint]:
    return make_candles(REVERSION_PRICES)


@pytest.fixture()
def scenario_config() -> BacktestConfig:
    """Hourly, 5-return vol window, 1-step z, hold one bar."""

    return BacktestConfig(
        interval_ms=HOUR_MS,
        starting_cash=1000.0,
        trade_notional=500.0,
        slippage_bps=0.0,
        use_funding=False,
        vol_window_returns=5,
        z_lookback_steps=1,
        enter_abs_z=2.0,
        exit_abs_z=0.1,
        max_hold_steps=1,
        strategy=StrategyMode.CONTRARIAN,
    )


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config(temp_dir: Path) -> Config:
    """Config loaded from a temp copy of the repo's config directory."""

    cfg_dst_dir = temp_dir / "config"
    cfg_dst_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(REPO_ROOT / "config" / "default.yaml", cfg_dst_dir / "default.yaml")
    shutil.copytree(REPO_ROOT / "config" / "presets", cfg_dst_dir / "presets")

    c = Config.from_yaml(cfg_dst_dir / "default.yaml")
    return c.model_copy(update={"config_dir": cfg_dst_dir})
