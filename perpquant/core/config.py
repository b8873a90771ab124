"""perpquant.core.config

Two config surfaces only:
1) `config/default.yaml` + `config/presets/*.yaml`
2) Environment variables (``PERPQUANT_`` prefix, ``__`` for nesting)

Everything else is derived. The engine never reads this module; callers turn a
``Config`` into a ``BacktestConfig`` at the edge.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from perpquant.core.exceptions import ConfigError

if TYPE_CHECKING:
    from perpquant.backtest.types import BacktestConfig
    from perpquant.strategy.perp_signal import SignalWeights


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class BacktestDefaults(BaseModel):
    """Backtest knobs that do not depend on the candle interval."""

    starting_cash: float = 10_000.0
    trade_notional: float = 1_000.0
    slippage_bps: float = 0.0
    use_funding: bool = True
    vol_window_returns: int = 48
    # None means "one day of steps" for whatever interval is being simulated.
    z_lookback_steps: int | None = None
    enter_abs_z: float = 2.0
    exit_abs_z: float = 0.5
    # None means "seven z-lookbacks".
    max_hold_steps: int | None = None
    min_crowding: float | None = None
    strategy: Literal["contrarian", "momentum"] = "contrarian"

    @field_validator("starting_cash", "trade_notional", "enter_abs_z")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("slippage_bps", "exit_abs_z")
    @classmethod
    def must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("vol_window_returns")
    @classmethod
    def window_needs_two_returns(cls, v: int) -> int:
        if v < 2:
            raise ValueError("vol_window_returns must be >= 2")
        return v

    def to_backtest_config(self, interval_ms: int) -> BacktestConfig:
        from perpquant.backtest.types import BacktestConfig, StrategyMode
        from perpquant.core.time import default_z_lookback_steps

        z_steps = self.z_lookback_steps or default_z_lookback_steps(interval_ms)
        return BacktestConfig(
            interval_ms=int(interval_ms),
            starting_cash=self.starting_cash,
            trade_notional=self.trade_notional,
            slippage_bps=self.slippage_bps,
            use_funding=self.use_funding,
            vol_window_returns=self.vol_window_returns,
            z_lookback_steps=z_steps,
            enter_abs_z=self.enter_abs_z,
            exit_abs_z=self.exit_abs_z,
            max_hold_steps=self.max_hold_steps or z_steps * 7,
            min_crowding=self.min_crowding,
            strategy=StrategyMode(self.strategy),
        )


class SignalConfig(BaseModel):
    liquidity_weight: float = 1.0
    funding_weight: float = 0.35
    premium_weight: float = 0.25
    funding_scale_bps: float = 10.0
    premium_scale_bps: float = 25.0
    crowding_min: float = 0.25
    crowding_max: float = 2.0

    @field_validator("funding_scale_bps", "premium_scale_bps")
    @classmethod
    def scale_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("scale must be > 0")
        return v

    @model_validator(mode="after")
    def crowding_bounds_ordered(self) -> SignalConfig:
        if self.crowding_min > self.crowding_max:
            raise ValueError("crowding_min must be <= crowding_max")
        return self

    def to_weights(self) -> SignalWeights:
        from perpquant.strategy.perp_signal import SignalWeights

        return SignalWeights(**self.model_dump())


class SweepConfig(BaseModel):
    max_workers: int = 4

    @field_validator("max_workers")
    @classmethod
    def at_least_one_worker(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workers must be >= 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    config_dir: Path = Path("config")

    preset: Literal["conservative", "balanced", "aggressive", "custom"] = "balanced"

    backtest: BacktestDefaults = Field(default_factory=BacktestDefaults)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "PERPQUANT_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; env must still win over it.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        preset_name = raw.get("preset", "balanced")
        preset_path = path.parent / "presets" / f"{preset_name}.yaml"
        if preset_path.exists():
            preset_data = yaml.safe_load(preset_path.read_text()) or {}
            raw = _deep_merge(preset_data, raw)

        try:
            return cls(**raw)
        except ValueError as e:
            raise ConfigError(f"Invalid config in {path}: {e}") from e

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")

    @classmethod
    def from_preset(
        cls,
        preset: Literal["conservative", "balanced", "aggressive"],
        *,
        repo_root: Path | None = None,
    ) -> Config:
        root = repo_root or Path.cwd()
        default_path = root / "config" / "default.yaml"
        if not default_path.exists():
            raise ConfigError(f"Config file not found: {default_path}")
        raw = yaml.safe_load(default_path.read_text()) or {}
        raw["preset"] = preset
        preset_path = default_path.parent / "presets" / f"{preset}.yaml"
        if not preset_path.exists():
            raise ConfigError(f"Preset not found: {preset_path}")
        preset_data = yaml.safe_load(preset_path.read_text()) or {}
        raw = _deep_merge(preset_data, raw)
        try:
            return cls(**raw)
        except ValueError as e:
            raise ConfigError(f"Invalid preset {preset}: {e}") from e
