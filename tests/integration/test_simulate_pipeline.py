"""Integration: provider -> cache -> simulate -> sweep, over one synthetic series.

Everything is in-memory and deterministic. The point is that the pieces agree:
the same series run through ``simulate`` (via either provider) and through
``run_backtest`` directly must produce identical results.
"""

from __future__ import annotations

import pytest

from perpquant.backtest.engine import run_backtest
from perpquant.backtest.provider import CachedProvider, FetchRequest, HistoryCache, InMemoryProvider, simulate
from perpquant.backtest.sweep import run_sweep
from perpquant.backtest.types import BacktestConfig, CandlePoint, ExitReason, FundingPoint
from perpquant.core.config import Config
from perpquant.core.time import HOUR_MS
from tests.unit._factories import REVERSION_PRICES, make_candles, make_funding

START = 1_700_000_000_000 - (1_700_000_000_000 % HOUR_MS)


def _series() -> tuple[list[CandlePoint], list[FundingPoint]]:
    candles = make_candles(REVERSION_PRICES, start=START)
    funding = make_funding([START + i * 8 * HOUR_MS for i in range(2)], funding_rate=0.0005, premium=0.001)
    return candles, funding


def test_simulate_matches_direct_backtest(scenario_config: BacktestConfig) -> None:
    candles, funding = _series()
    end = candles[-1].time

    provider = InMemoryProvider(candles={("btc", "1h"): candles}, funding={"btc": funding})
    via_provider = simulate(
        provider=provider,
        symbol="btc",
        interval="1h",
        start_time=START,
        end_time=end,
        config=scenario_config,
    )
    direct = run_backtest(candles=candles, funding=funding, config=scenario_config)

    assert via_provider == direct
    assert via_provider.trades
    assert via_provider.trades[-1].exit_reason in set(ExitReason)


def test_cached_provider_fetches_once(scenario_config: BacktestConfig) -> None:
    candles, funding = _series()
    end = candles[-1].time
    calls: list[FetchRequest] = []

    def fetch_candles(req: FetchRequest) -> list[CandlePoint]:
        calls.append(req)
        return [c for c in candles if req.start_time <= c.time <= req.end_time]

    def fetch_funding(req: FetchRequest) -> list[FundingPoint]:
        calls.append(req)
        return [f for f in funding if req.start_time <= f.time <= req.end_time]

    provider = CachedProvider(
        candles=HistoryCache(fetch_candles),
        funding=HistoryCache(fetch_funding, default_tolerance_ms=8 * HOUR_MS),
    )

    first = simulate(provider=provider, symbol="BTC", interval="1h", start_time=START, end_time=end, config=scenario_config)
    second = simulate(provider=provider, symbol="BTC", interval="1h", start_time=START, end_time=end, config=scenario_config)

    assert first == second
    assert len(calls) == 2
    assert first == run_backtest(candles=candles, funding=funding, config=scenario_config)


def test_repo_config_drives_a_sweep(scenario_config: BacktestConfig) -> None:
    candles, funding = _series()
    cfg = Config()

    result = run_sweep(
        candles=candles,
        funding=funding,
        base=scenario_config,
        grid={"enter_abs_z": [1.5, 2.0, 3.0], "slippage_bps": [0.0, 10.0]},
        weights=cfg.signal.to_weights(),
        max_workers=cfg.sweep.max_workers,
    )

    assert len(result.items) == 6
    assert [it.params["enter_abs_z"] for it in result.items] == [1.5, 1.5, 2.0, 2.0, 3.0, 3.0]
    best = result.best()
    assert best is not None
    assert best.summary.total_return == pytest.approx(max(it.summary.total_return for it in result.items))
