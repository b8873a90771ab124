"""perpquant.quant.vol

Realized volatility from close prices.

- ``realized_vol``: one number for the whole series (sample std, n-1)
- ``rolling_annualized_vol``: one value per index over a window of *returns*,
  O(1) per step via prefix sums of r and r^2
- ``rolling_annualized_vol_naive``: O(n * window) recomputation, kept as the
  oracle the prefix-sum path is checked against
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from perpquant.core.time import YEAR_SECONDS


def _valid_pair(p0: float, p1: float) -> bool:
    return math.isfinite(p0) and math.isfinite(p1) and p0 > 0 and p1 > 0


def realized_vol(
    closes: Sequence[float] | np.ndarray,
    *,
    period_seconds: float,
    year_seconds: float = YEAR_SECONDS,
) -> float | None:
    """Annualized sample volatility of log returns.

    Pairs with a non-finite or non-positive price are skipped, not zeroed.
    Returns ``None`` with fewer than two usable returns.
    """

    if len(closes) < 2:
        return None
    if not math.isfinite(period_seconds) or period_seconds <= 0:
        return None

    rets = [
        math.log(float(p1) / float(p0))
        for p0, p1 in zip(closes[:-1], closes[1:])
        if _valid_pair(float(p0), float(p1))
    ]
    if len(rets) < 2:
        return None

    per_period = float(np.std(np.asarray(rets, dtype=np.float64), ddof=1))
    return per_period * math.sqrt(year_seconds / period_seconds)


def _log_returns_zero_filled(closes: np.ndarray) -> np.ndarray:
    """Return array ``rets`` with ``rets[i] = ln(p_i / p_{i-1})`` and ``rets[0] = 0``.

    Invalid pairs contribute 0 so every index keeps its position in the window.
    """

    rets = np.zeros(closes.shape[0], dtype=np.float64)
    if closes.shape[0] < 2:
        return rets
    p0 = closes[:-1]
    p1 = closes[1:]
    ok = np.isfinite(p0) & np.isfinite(p1) & (p0 > 0) & (p1 > 0)
    with np.errstate(divide="ignore", invalid="ignore"):
        lr = np.log(np.where(ok, p1, 1.0) / np.where(ok, p0, 1.0))
    rets[1:] = np.where(ok, lr, 0.0)
    return rets


def _window_args_ok(n: int, period_seconds: float, window_returns: int) -> bool:
    if n < 2:
        return False
    if not math.isfinite(period_seconds) or period_seconds <= 0:
        return False
    return window_returns >= 2


def rolling_annualized_vol(
    closes: Sequence[float] | np.ndarray,
    *,
    period_seconds: float,
    window_returns: int,
    year_seconds: float = YEAR_SECONDS,
) -> list[float | None]:
    """Trailing annualized vol at each price index.

    Index ``i`` uses returns ``i - window_returns + 1 .. i``; indexes before the
    window fills are ``None``.
    """

    px = np.asarray(closes, dtype=np.float64)
    n = int(px.shape[0])
    out: list[float | None] = [None] * n
    if not _window_args_ok(n, period_seconds, int(window_returns)):
        return out

    k = int(window_returns)
    rets = _log_returns_zero_filled(px)
    pref1 = np.cumsum(rets)
    pref2 = np.cumsum(rets * rets)
    annual = math.sqrt(year_seconds / period_seconds)

    for i in range(k, n):
        start = i - k + 1
        s1 = float(pref1[i] - pref1[start - 1])
        s2 = float(pref2[i] - pref2[start - 1])
        mean = s1 / k
        variance = (s2 - k * mean * mean) / (k - 1)
        # Cancellation can leave tiny negatives on flat windows.
        out[i] = (math.sqrt(variance) if variance > 0 else 0.0) * annual

    return out


def rolling_annualized_vol_naive(
    closes: Sequence[float] | np.ndarray,
    *,
    period_seconds: float,
    window_returns: int,
    year_seconds: float = YEAR_SECONDS,
) -> list[float | None]:
    px = np.asarray(closes, dtype=np.float64)
    n = int(px.shape[0])
    out: list[float | None] = [None] * n
    if not _window_args_ok(n, period_seconds, int(window_returns)):
        return out

    k = int(window_returns)
    rets = _log_returns_zero_filled(px)
    annual = math.sqrt(year_seconds / period_seconds)
    for i in range(k, n):
        w = rets[i - k + 1 : i + 1]
        out[i] = float(np.std(w, ddof=1)) * annual
    return out
