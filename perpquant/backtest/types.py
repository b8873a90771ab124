"""perpquant.backtest.types

Records that flow in and out of the simulator.

Inputs are frozen; outputs are frozen. The only mutable object in a backtest is
the open position, and it never leaves ``perpquant.backtest.engine``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from perpquant.core.exceptions import ConfigError
from perpquant.strategy.perp_signal import PerpSide


@dataclass(frozen=True, slots=True)
class CandlePoint:
    time: int  # ms
    price: float  # close/mid


@dataclass(frozen=True, slots=True)
class FundingPoint:
    time: int  # ms
    funding_rate: float  # decimal; > 0 means longs pay shorts
    premium: float  # decimal


class StrategyMode(StrEnum):
    CONTRARIAN = "contrarian"
    MOMENTUM = "momentum"


class ExitReason(StrEnum):
    SIGNAL = "signal"
    TIMEOUT = "timeout"
    END = "end"


@dataclass(frozen=True, slots=True)
class BacktestConfig:
    interval_ms: int
    starting_cash: float
    trade_notional: float
    enter_abs_z: float
    exit_abs_z: float
    slippage_bps: float = 0.0
    use_funding: bool = True
    # Rolling vol window in *returns*, e.g. 48 for two days of 1h candles.
    vol_window_returns: int = 48
    # Steps the sigma move is measured over, e.g. 24 for a day of 1h candles.
    z_lookback_steps: int = 24
    max_hold_steps: int = 24 * 7
    # Require signal crowding >= this to enter.
    min_crowding: float | None = None
    strategy: StrategyMode = StrategyMode.CONTRARIAN

    def validate(self) -> None:
        """Raise ``ConfigError`` on the first invalid field."""

        def finite(name: str) -> float:
            v = float(getattr(self, name))
            if not math.isfinite(v):
                raise ConfigError(f"{name} must be finite")
            return v

        if finite("interval_ms") <= 0:
            raise ConfigError("interval_ms must be > 0")
        if finite("starting_cash") <= 0:
            raise ConfigError("starting_cash must be > 0")
        if finite("trade_notional") <= 0:
            raise ConfigError("trade_notional must be > 0")
        if finite("enter_abs_z") <= 0:
            raise ConfigError("enter_abs_z must be > 0")
        if finite("exit_abs_z") < 0:
            raise ConfigError("exit_abs_z must be >= 0")
        if finite("slippage_bps") < 0:
            raise ConfigError("slippage_bps must be >= 0")
        if int(self.vol_window_returns) < 2:
            raise ConfigError("vol_window_returns must be >= 2")
        if int(self.z_lookback_steps) < 1:
            raise ConfigError("z_lookback_steps must be >= 1")
        if int(self.max_hold_steps) < 1:
            raise ConfigError("max_hold_steps must be >= 1")
        if self.min_crowding is not None and not math.isfinite(self.min_crowding):
            raise ConfigError("min_crowding must be finite")
        try:
            StrategyMode(self.strategy)
        except ValueError as e:
            raise ConfigError(f"unknown strategy: {self.strategy}") from e


@dataclass(frozen=True, slots=True)
class Trade:
    side: PerpSide
    entry_time: int
    exit_time: int
    entry_px: float
    exit_px: float
    qty: float
    notional: float
    pnl_px: float
    funding_pnl: float
    total_pnl: float
    hold_steps: int
    entry_z: float | None
    exit_z: float | None
    exit_reason: ExitReason


@dataclass(frozen=True, slots=True)
class EquityPoint:
    time: int
    price: float
    cash: float
    equity: float
    sigma: float | None
    z: float | None
    tail_p: float | None
    funding_rate: float | None
    premium: float | None
    position_side: PerpSide | None
    position_value: float | None


@dataclass(frozen=True, slots=True)
class BacktestSummary:
    starting_cash: float
    ending_equity: float
    total_return: float
    trade_count: int
    win_rate: float | None
    avg_pnl: float | None
    profit_factor: float | None
    max_drawdown: float
    max_drawdown_pct: float | None


@dataclass(frozen=True, slots=True)
class BacktestResult:
    config: BacktestConfig
    summary: BacktestSummary
    equity: list[EquityPoint] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-ready dict. Enums become their string values."""

        return {
            "config": asdict(self.config),
            "summary": asdict(self.summary),
            "equity": [asdict(p) for p in self.equity],
            "trades": [asdict(t) for t in self.trades],
        }
