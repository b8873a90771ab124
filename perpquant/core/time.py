"""perpquant.core.time

Durations and candle intervals.

This module is the *only* time helper surface in the codebase. The engine
itself never reads a clock; everything is integer milliseconds.
"""

from __future__ import annotations

import math
import re
from typing import Final

SECOND_MS: Final[int] = 1_000
MINUTE_MS: Final[int] = 60 * SECOND_MS
HOUR_MS: Final[int] = 60 * MINUTE_MS
DAY_MS: Final[int] = 24 * HOUR_MS
YEAR_MS: Final[int] = 365 * DAY_MS
YEAR_SECONDS: Final[float] = YEAR_MS / 1_000

_UNIT_MS: Final[dict[str, int]] = {
    "ms": 1,
    "s": SECOND_MS,
    "m": MINUTE_MS,
    "h": HOUR_MS,
    "d": DAY_MS,
}

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h|d)$")

CANDLE_INTERVALS_MS: Final[dict[str, int]] = {
    "1m": MINUTE_MS,
    "5m": 5 * MINUTE_MS,
    "15m": 15 * MINUTE_MS,
    "1h": HOUR_MS,
    "4h": 4 * HOUR_MS,
    "1d": DAY_MS,
}


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def parse_duration_ms(value: str) -> int | None:
    """Parse a human duration (``"90s"``, ``"1.5h"``, ``"2d"``) into milliseconds.

    Returns ``None`` for anything that does not match ``<number><unit>``.
    """

    m = _DURATION_RE.match(value.strip().lower())
    if m is None:
        return None
    n = float(m.group(1))
    if not math.isfinite(n):
        return None
    return _round_half_up(n * _UNIT_MS[m.group(2)])


def interval_to_ms(interval: str) -> int | None:
    return CANDLE_INTERVALS_MS.get(interval)


def default_z_lookback_steps(interval_ms: int) -> int:
    """Steps covering one day on the given candle interval (at least 1)."""

    if interval_ms <= 0:
        raise ValueError("interval_ms must be > 0")
    return max(1, _round_half_up(DAY_MS / interval_ms))
