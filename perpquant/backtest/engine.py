"""perpquant.backtest.engine

Single-pass perp backtest.

One step per candle, always in this order:
1. forward-fill funding (latest point at or before the candle)
2. accrue funding on the open position
3. rolling sigma -> sigma move z -> two-sided tail probability
4. exit check (signal reversion, timeout, last candle)
5. entry check (|z| threshold, cash, crowding gate)
6. equity snapshot

The position is a tagged state: ``Flat`` or ``Open(PositionState)``. Exits are
evaluated before entries, so a position closed on a bar can be replaced on the
same bar.

Pure function of its inputs. Same candles + funding + config, same output.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from perpquant.backtest.types import (
    BacktestConfig,
    BacktestResult,
    CandlePoint,
    EquityPoint,
    ExitReason,
    FundingPoint,
    StrategyMode,
    Trade,
)
from perpquant.backtest.validation import summarize
from perpquant.core.time import HOUR_MS, YEAR_MS
from perpquant.quant.normal import norm_cdf
from perpquant.quant.vol import rolling_annualized_vol
from perpquant.strategy.perp_signal import (
    PerpSide,
    SignalWeights,
    compute_perp_contrarian_signal,
    sigma_move_z,
)

logger = logging.getLogger(__name__)

MIN_CANDLES = 3


@dataclass(slots=True)
class PositionState:
    side: PerpSide
    notional: float
    qty: float
    entry_px: float
    entry_time: int
    entry_index: int
    entry_z: float | None
    funding_pnl: float = 0.0

    def value_at(self, price: float) -> float:
        """Notional + unrealized price PnL + accrued funding."""

        return self.notional + (price - self.entry_px) * self.qty * self.side.direction + self.funding_pnl


@dataclass(frozen=True, slots=True)
class Flat:
    pass


@dataclass(frozen=True, slots=True)
class Open:
    position: PositionState


State = Flat | Open

FLAT = Flat()


def apply_slippage(price: float, side: PerpSide, slippage_bps: float, *, entry: bool) -> float:
    """Move ``price`` against the position: pay up on the way in, give up on the way out."""

    slip = max(0.0, slippage_bps) / 10_000.0
    if slip == 0.0:
        return price
    buying = (side is PerpSide.LONG) == entry
    return price * (1.0 + slip) if buying else price * (1.0 - slip)


def _finite_or_none(x: float | None) -> float | None:
    if x is None or not math.isfinite(x):
        return None
    return float(x)


def _empty_result(cfg: BacktestConfig) -> BacktestResult:
    return BacktestResult(
        config=cfg,
        summary=summarize(starting_cash=cfg.starting_cash, equity=[], trades=[]),
        equity=[],
        trades=[],
    )


def _close(
    pos: PositionState,
    *,
    time: int,
    price: float,
    index: int,
    z: float | None,
    reason: ExitReason,
    slippage_bps: float,
) -> Trade:
    exit_px = apply_slippage(price, pos.side, slippage_bps, entry=False)
    pnl_px = (exit_px - pos.entry_px) * pos.qty * pos.side.direction
    return Trade(
        side=pos.side,
        entry_time=pos.entry_time,
        exit_time=time,
        entry_px=pos.entry_px,
        exit_px=exit_px,
        qty=pos.qty,
        notional=pos.notional,
        pnl_px=pnl_px,
        funding_pnl=pos.funding_pnl,
        total_pnl=pnl_px + pos.funding_pnl,
        hold_steps=index - pos.entry_index,
        entry_z=pos.entry_z,
        exit_z=z,
        exit_reason=reason,
    )


def run_backtest(
    *,
    candles: Sequence[CandlePoint],
    funding: Sequence[FundingPoint] | None = None,
    config: BacktestConfig,
    weights: SignalWeights | None = None,
) -> BacktestResult:
    """Simulate the sigma-move strategy over ``candles``.

    Raises:
        ConfigError: if ``config`` fails validation.
    """

    cfg = config
    cfg.validate()

    bars = sorted(candles, key=lambda c: c.time)
    if len(bars) < MIN_CANDLES:
        logger.debug("backtest skipped: %d candles", len(bars))
        return _empty_result(cfg)

    closes = [float(c.price) for c in bars]
    interval_ms = int(cfg.interval_ms)
    lag = int(cfg.z_lookback_steps)
    last = len(bars) - 1
    step_hours = interval_ms / HOUR_MS
    strategy = StrategyMode(cfg.strategy)

    sigmas = rolling_annualized_vol(
        closes,
        period_seconds=interval_ms / 1000.0,
        window_returns=int(cfg.vol_window_returns),
    )
    fpts = sorted(funding or (), key=lambda f: f.time)
    f_idx = -1

    logger.debug(
        "backtest start: %d candles, %d funding points, strategy=%s",
        len(bars),
        len(fpts),
        strategy,
    )

    cash = float(cfg.starting_cash)
    state: State = FLAT
    equity: list[EquityPoint] = []
    trades: list[Trade] = []

    for i, bar in enumerate(bars):
        time = bar.time
        price = closes[i]

        while f_idx + 1 < len(fpts) and fpts[f_idx + 1].time <= time:
            f_idx += 1
        current = fpts[f_idx] if f_idx >= 0 else None
        funding_rate = _finite_or_none(current.funding_rate) if current else None
        premium = _finite_or_none(current.premium) if current else None

        if isinstance(state, Open) and cfg.use_funding and funding_rate is not None:
            pos = state.position
            # Shorts receive when the rate is positive.
            carry_sign = -pos.side.direction
            pos.funding_pnl += carry_sign * (pos.qty * price) * funding_rate * step_hours

        sigma = sigmas[i]
        z = (
            sigma_move_z(
                price=price,
                ref_price=closes[i - lag],
                sigma=sigma,
                lookback_steps=lag,
                interval_ms=interval_ms,
                year_ms=YEAR_MS,
            )
            if i >= lag
            else None
        )
        tail_p = None if z is None else 2.0 * (1.0 - norm_cdf(abs(z)))

        # Undefined z freezes signal/timeout exits, but the last bar always closes.
        if isinstance(state, Open) and (z is not None or i == last):
            pos = state.position
            timed_out = i - pos.entry_index >= cfg.max_hold_steps
            reverted = z is not None and abs(z) <= cfg.exit_abs_z
            if reverted or timed_out or i == last:
                if i == last:
                    reason = ExitReason.END
                elif timed_out:
                    reason = ExitReason.TIMEOUT
                else:
                    reason = ExitReason.SIGNAL
                trade = _close(
                    pos,
                    time=time,
                    price=price,
                    index=i,
                    z=z,
                    reason=reason,
                    slippage_bps=cfg.slippage_bps,
                )
                cash += trade.notional + trade.total_pnl
                trades.append(trade)
                state = FLAT
                logger.debug(
                    "close %s at %s: pnl=%.6f reason=%s",
                    trade.side,
                    time,
                    trade.total_pnl,
                    reason,
                )

        if isinstance(state, Flat) and z is not None and abs(z) >= cfg.enter_abs_z and cash >= cfg.trade_notional:
            signal = compute_perp_contrarian_signal(
                z,
                funding_rate=funding_rate,
                premium=premium,
                weights=weights,
            )
            gated = signal is not None and cfg.min_crowding is not None and signal.crowding < cfg.min_crowding
            if signal is not None and not gated:
                side = signal.side if strategy is StrategyMode.CONTRARIAN else signal.side.opposite
                entry_px = apply_slippage(price, side, cfg.slippage_bps, entry=True)
                state = Open(
                    PositionState(
                        side=side,
                        notional=float(cfg.trade_notional),
                        qty=cfg.trade_notional / entry_px,
                        entry_px=entry_px,
                        entry_time=time,
                        entry_index=i,
                        entry_z=z,
                    )
                )
                cash -= cfg.trade_notional

        position_value = state.position.value_at(price) if isinstance(state, Open) else None
        equity.append(
            EquityPoint(
                time=time,
                price=price,
                cash=cash,
                equity=cash + (position_value or 0.0),
                sigma=sigma,
                z=z,
                tail_p=tail_p,
                funding_rate=funding_rate,
                premium=premium,
                position_side=state.position.side if isinstance(state, Open) else None,
                position_value=position_value,
            )
        )

    summary = summarize(starting_cash=cfg.starting_cash, equity=equity, trades=trades, final_cash=cash)
    logger.debug(
        "backtest done: trades=%d ending_equity=%.6f",
        summary.trade_count,
        summary.ending_equity,
    )
    return BacktestResult(config=cfg, summary=summary, equity=equity, trades=trades)
