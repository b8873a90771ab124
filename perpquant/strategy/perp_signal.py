"""perpquant.strategy.perp_signal

Contrarian perp signal.

Fade the sigma move:
- z >= 0 (price ran up)  -> short
- z <  0 (price dumped)  -> long

Score = |z| * liquidity factor * crowding. Crowding is a bounded multiplier that
rewards funding/premium paying the faded side and penalizes the opposite.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum


class PerpSide(StrEnum):
    LONG = "long"
    SHORT = "short"

    @property
    def opposite(self) -> PerpSide:
        return PerpSide.SHORT if self is PerpSide.LONG else PerpSide.LONG

    @property
    def direction(self) -> int:
        """+1 for long, -1 for short. Multiplies price PnL."""

        return 1 if self is PerpSide.LONG else -1


@dataclass(frozen=True, slots=True)
class SignalWeights:
    liquidity_weight: float = 1.0
    funding_weight: float = 0.35
    premium_weight: float = 0.25
    funding_scale_bps: float = 10.0
    premium_scale_bps: float = 25.0
    crowding_min: float = 0.25
    crowding_max: float = 2.0


DEFAULT_WEIGHTS = SignalWeights()


@dataclass(frozen=True, slots=True)
class PerpSignal:
    side: PerpSide
    score: float
    z: float
    abs_z: float
    liq_log10: float
    liquidity_factor: float
    funding_rate: float | None
    premium: float | None
    funding_bps: float | None
    premium_bps: float | None
    funding_align_bps: float | None
    premium_align_bps: float | None
    funding_quality: float  # [-1, 1]
    premium_quality: float  # [-1, 1]
    crowding: float


def _clamp(x: float, lo: float, hi: float) -> float:
    return min(max(x, lo), hi)


def _finite_or_none(x: float | None) -> float | None:
    if x is None or not math.isfinite(x):
        return None
    return float(x)


def _to_bps(x: float | None) -> float | None:
    return None if x is None else x * 10_000.0


def contrarian_side(z: float) -> PerpSide:
    return PerpSide.SHORT if z >= 0 else PerpSide.LONG


def sigma_move_z(
    *,
    price: float,
    ref_price: float,
    sigma: float | None,
    lookback_steps: int,
    interval_ms: int,
    year_ms: int,
) -> float | None:
    """Log move over the lookback in units of sigma scaled to that horizon.

    ``None`` when sigma is missing or non-positive, or either price is unusable.
    """

    if sigma is None or not math.isfinite(sigma) or sigma <= 0:
        return None
    if not math.isfinite(ref_price) or ref_price <= 0 or not math.isfinite(price) or price <= 0:
        return None
    horizon = math.sqrt((interval_ms * lookback_steps) / year_ms)
    return math.log(price / ref_price) / (sigma * horizon)


def compute_perp_contrarian_signal(
    z: float | None,
    *,
    day_ntl_vlm: float | None = None,
    funding_rate: float | None = None,
    premium: float | None = None,
    weights: SignalWeights | None = None,
) -> PerpSignal | None:
    """Build a contrarian signal from a sigma move and optional carry context.

    ``funding_rate > 0`` means longs pay shorts; ``premium > 0`` means the perp
    trades rich to its index. Both are decimals, not bps.
    """

    if z is None or not math.isfinite(z):
        return None
    w = weights or DEFAULT_WEIGHTS

    abs_z = abs(z)
    side = contrarian_side(z)

    liq = 0.0 if day_ntl_vlm is None else float(day_ntl_vlm)
    liq_log10 = math.log10(liq + 1.0) if math.isfinite(liq) and liq > 0 else 0.0
    liquidity_factor = 1.0 + w.liquidity_weight * liq_log10

    fr = _finite_or_none(funding_rate)
    pr = _finite_or_none(premium)
    funding_bps = _to_bps(fr)
    premium_bps = _to_bps(pr)

    # Positive carry on a short when longs are paying and the perp is rich.
    align = 1.0 if side is PerpSide.SHORT else -1.0
    funding_align_bps = None if funding_bps is None else funding_bps * align
    premium_align_bps = None if premium_bps is None else premium_bps * align

    funding_quality = (
        0.0 if funding_align_bps is None else _clamp(funding_align_bps / w.funding_scale_bps, -1.0, 1.0)
    )
    premium_quality = (
        0.0 if premium_align_bps is None else _clamp(premium_align_bps / w.premium_scale_bps, -1.0, 1.0)
    )

    crowding_raw = 1.0 + w.funding_weight * funding_quality + w.premium_weight * premium_quality
    crowding = _clamp(crowding_raw, w.crowding_min, w.crowding_max)

    return PerpSignal(
        side=side,
        score=abs_z * liquidity_factor * crowding,
        z=z,
        abs_z=abs_z,
        liq_log10=liq_log10,
        liquidity_factor=liquidity_factor,
        funding_rate=fr,
        premium=pr,
        funding_bps=funding_bps,
        premium_bps=premium_bps,
        funding_align_bps=funding_align_bps,
        premium_align_bps=premium_align_bps,
        funding_quality=funding_quality,
        premium_quality=premium_quality,
        crowding=crowding,
    )


class HealthAction(StrEnum):
    HOLD = "hold"
    REVIEW = "review"
    EXIT = "exit"
    EXIT_NOW = "exit_now"


@dataclass(frozen=True, slots=True)
class PerpHealth:
    score: float | None  # [-1, 1], positive = still aligned
    label: str | None
    action: HealthAction | None


def health_for_position(*, position_side: PerpSide | str, signal: PerpSignal | None) -> PerpHealth:
    """Grade an open position against the signal as it reads *now*.

    The grade can fall while the position is in profit: it tracks whether the
    entry edge is still there, not PnL.
    """

    if signal is None:
        return PerpHealth(score=None, label=None, action=None)

    aligned = signal.side == PerpSide(position_side)
    strength = _clamp(signal.abs_z / 2.5, 0.0, 1.0)
    carry = _clamp(0.6 * signal.funding_quality + 0.4 * signal.premium_quality, -1.0, 1.0)
    combined = _clamp(0.75 * strength + 0.25 * carry, -1.0, 1.0)
    signed = combined if aligned else -combined

    if not aligned:
        if signal.abs_z >= 1:
            return PerpHealth(score=signed, label="Exit now", action=HealthAction.EXIT_NOW)
        return PerpHealth(score=signed, label="Exit", action=HealthAction.EXIT)

    if combined < 0.12:
        return PerpHealth(score=signed, label="Edge gone", action=HealthAction.EXIT)
    if combined < 0.35:
        return PerpHealth(score=signed, label="Weak", action=HealthAction.REVIEW)
    if combined < 0.7:
        return PerpHealth(score=signed, label="Good", action=HealthAction.HOLD)
    return PerpHealth(score=signed, label="Strong", action=HealthAction.HOLD)
