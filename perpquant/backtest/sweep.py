"""perpquant.backtest.sweep

Parameter sweep harness.

Backtests are pure, so a sweep is plain data parallelism: one task per config,
results returned in grid order no matter which finishes first.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields, replace
from typing import Any

from perpquant.backtest.engine import run_backtest
from perpquant.backtest.types import BacktestConfig, BacktestSummary, CandlePoint, FundingPoint
from perpquant.strategy.perp_signal import SignalWeights

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepItem:
    params: dict[str, Any]
    config: BacktestConfig
    summary: BacktestSummary


@dataclass(frozen=True, slots=True)
class SweepResult:
    items: list[SweepItem]

    def best(self, key: str = "total_return") -> SweepItem | None:
        """Item with the highest summary ``key``; items where it is None are skipped."""

        scored = [it for it in self.items if getattr(it.summary, key) is not None]
        if not scored:
            return None
        return max(scored, key=lambda it: getattr(it.summary, key))


def build_grid(base: BacktestConfig, grid: Mapping[str, Sequence[Any]]) -> list[tuple[dict[str, Any], BacktestConfig]]:
    """Cartesian product of ``grid`` applied over ``base``. Keys keep insertion order."""

    if not grid:
        return [({}, base)]
    known = {f.name for f in fields(BacktestConfig)}
    for name in grid:
        if name not in known:
            raise ValueError(f"unknown BacktestConfig field: {name}")

    names = list(grid)
    out: list[tuple[dict[str, Any], BacktestConfig]] = []
    for values in itertools.product(*(grid[n] for n in names)):
        params = dict(zip(names, values))
        out.append((params, replace(base, **params)))
    return out


def run_sweep(
    *,
    candles: Sequence[CandlePoint],
    funding: Sequence[FundingPoint] | None = None,
    base: BacktestConfig,
    grid: Mapping[str, Sequence[Any]],
    weights: SignalWeights | None = None,
    max_workers: int = 4,
) -> SweepResult:
    """Run every grid point over the same series.

    Invalid grid points raise ``ConfigError`` before any result is returned.
    """

    points = build_grid(base, grid)
    for _, cfg in points:
        cfg.validate()

    candles = list(candles)
    funding = list(funding or ())

    def one(cfg: BacktestConfig) -> BacktestSummary:
        return run_backtest(candles=candles, funding=funding, config=cfg, weights=weights).summary

    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as pool:
        summaries = list(pool.map(one, [cfg for _, cfg in points]))

    logger.debug("sweep done: %d points", len(points))
    return SweepResult(items=[SweepItem(params=p, config=c, summary=s) for (p, c), s in zip(points, summaries)])
