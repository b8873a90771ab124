"""perpquant.backtest

Perp backtest: sigma-move signal in, trades + equity curve + summary out.
"""

from __future__ import annotations

from perpquant.backtest.engine import run_backtest
from perpquant.backtest.provider import CachedProvider, DataProvider, HistoryCache, InMemoryProvider, simulate
from perpquant.backtest.sweep import SweepResult, run_sweep
from perpquant.backtest.types import (
    BacktestConfig,
    BacktestResult,
    BacktestSummary,
    CandlePoint,
    EquityPoint,
    ExitReason,
    FundingPoint,
    StrategyMode,
    Trade,
)

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "BacktestSummary",
    "CachedProvider",
    "CandlePoint",
    "DataProvider",
    "EquityPoint",
    "ExitReason",
    "FundingPoint",
    "HistoryCache",
    "InMemoryProvider",
    "StrategyMode",
    "SweepResult",
    "Trade",
    "run_backtest",
    "run_sweep",
    "simulate",
]
