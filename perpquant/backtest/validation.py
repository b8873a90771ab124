"""perpquant.backtest.validation

Performance metrics over a finished backtest.

This is v1: enough to prevent self-deception.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from perpquant.backtest.types import BacktestSummary, EquityPoint, Trade


@dataclass(frozen=True, slots=True)
class Drawdown:
    absolute: float
    pct: float | None  # relative to the running peak at the worst point


def max_drawdown(equity: Sequence[float] | np.ndarray) -> Drawdown:
    """Worst peak-to-trough drop. Non-finite points are ignored."""

    eq = np.asarray(equity, dtype=np.float64)
    eq = eq[np.isfinite(eq)]
    if eq.size == 0:
        return Drawdown(absolute=0.0, pct=None)

    peak = np.maximum.accumulate(eq)
    dd = peak - eq
    worst = int(np.argmax(dd))
    absolute = float(dd[worst])
    if absolute <= 0.0:
        return Drawdown(absolute=0.0, pct=None)

    p = float(peak[worst])
    return Drawdown(absolute=absolute, pct=absolute / p if p > 0 else None)


def summarize(
    *,
    starting_cash: float,
    equity: Sequence[EquityPoint],
    trades: Sequence[Trade],
    final_cash: float | None = None,
) -> BacktestSummary:
    if equity:
        ending = float(equity[-1].equity)
    else:
        ending = float(starting_cash if final_cash is None else final_cash)

    n = len(trades)
    pnls = [t.total_pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    loss_sum = sum(losses)

    dd = max_drawdown([p.equity for p in equity])
    return BacktestSummary(
        starting_cash=float(starting_cash),
        ending_equity=ending,
        total_return=ending / float(starting_cash) - 1.0,
        trade_count=n,
        win_rate=len(wins) / n if n else None,
        avg_pnl=sum(pnls) / n if n else None,
        profit_factor=sum(wins) / abs(loss_sum) if loss_sum < 0 else None,
        max_drawdown=dd.absolute,
        max_drawdown_pct=dd.pct,
    )
