from __future__ import annotations

import pytest

from perpquant.core.time import DAY_MS, HOUR_MS, default_z_lookback_steps, interval_to_ms, parse_duration_ms


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("250ms", 250),
        ("90s", 90_000),
        ("15m", 900_000),
        ("1.5h", 5_400_000),
        (" 2D ", 2 * DAY_MS),
        ("0s", 0),
    ],
)
def test_parse_duration(raw: str, expected: int) -> None:
    assert parse_duration_ms(raw) == expected


@pytest.mark.parametrize("raw", ["", "h", "-1h", "1w", "1 h", "1.h", "abc"])
def test_parse_duration_rejects(raw: str) -> None:
    assert parse_duration_ms(raw) is None


def test_interval_to_ms() -> None:
    assert interval_to_ms("1h") == HOUR_MS
    assert interval_to_ms("4h") == 4 * HOUR_MS
    assert interval_to_ms("2h") is None


def test_default_z_lookback_is_one_day() -> None:
    assert default_z_lookback_steps(HOUR_MS) == 24
    assert default_z_lookback_steps(4 * HOUR_MS) == 6
    assert default_z_lookback_steps(DAY_MS) == 1
    assert default_z_lookback_steps(7 * DAY_MS) == 1
    with pytest.raises(ValueError):
        default_z_lookback_steps(0)
