from __future__ import annotations

import math

import numpy as np
import pytest

from perpquant.backtest.types import EquityPoint, ExitReason, Trade
from perpquant.backtest.validation import max_drawdown, summarize
from perpquant.strategy.perp_signal import PerpSide


def _point(equity: float) -> EquityPoint:
    return EquityPoint(
        time=0,
        price=1.0,
        cash=equity,
        equity=equity,
        sigma=None,
        z=None,
        tail_p=None,
        funding_rate=None,
        premium=None,
        position_side=None,
        position_value=None,
    )


def _trade(total_pnl: float) -> Trade:
    return Trade(
        side=PerpSide.LONG,
        entry_time=0,
        exit_time=1,
        entry_px=100.0,
        exit_px=100.0,
        qty=1.0,
        notional=100.0,
        pnl_px=total_pnl,
        funding_pnl=0.0,
        total_pnl=total_pnl,
        hold_steps=1,
        entry_z=2.0,
        exit_z=0.0,
        exit_reason=ExitReason.SIGNAL,
    )


def test_max_drawdown_peak_to_trough() -> None:
    dd = max_drawdown(np.array([1.0, 1.2, 1.1, 1.3, 1.0], dtype=np.float64))
    assert dd.absolute == pytest.approx(0.3)
    assert dd.pct == pytest.approx(0.3 / 1.3)


def test_max_drawdown_pct_uses_peak_at_worst_point() -> None:
    # 100 -> 50 is -50 (50%); 400 -> 320 is -80 (20%). Absolute wins.
    dd = max_drawdown([100.0, 50.0, 400.0, 320.0])
    assert dd.absolute == pytest.approx(80.0)
    assert dd.pct == pytest.approx(0.2)


def test_max_drawdown_monotone_and_empty() -> None:
    assert max_drawdown([1.0, 2.0, 3.0]).absolute == 0.0
    assert max_drawdown([1.0, 2.0, 3.0]).pct is None
    assert max_drawdown([]).absolute == 0.0
    assert max_drawdown([math.nan, 5.0, 4.0]).absolute == pytest.approx(1.0)


def test_summarize_trade_statistics() -> None:
    s = summarize(
        starting_cash=1000.0,
        equity=[_point(1000.0), _point(1040.0), _point(1010.0), _point(1050.0)],
        trades=[_trade(40.0), _trade(-30.0), _trade(40.0), _trade(0.0)],
    )
    assert s.ending_equity == 1050.0
    assert s.total_return == pytest.approx(0.05)
    assert s.trade_count == 4
    assert s.win_rate == pytest.approx(0.5)
    assert s.avg_pnl == pytest.approx(12.5)
    assert s.profit_factor == pytest.approx(80.0 / 30.0)
    assert s.max_drawdown == pytest.approx(30.0)


def test_summarize_without_losses_has_no_profit_factor() -> None:
    s = summarize(starting_cash=100.0, equity=[_point(100.0), _point(110.0)], trades=[_trade(10.0)])
    assert s.profit_factor is None
    assert s.win_rate == 1.0


def test_summarize_without_trades() -> None:
    s = summarize(starting_cash=100.0, equity=[], trades=[])
    assert s.trade_count == 0
    assert s.win_rate is None
    assert s.avg_pnl is None
    assert s.profit_factor is None
    assert s.ending_equity == 100.0
