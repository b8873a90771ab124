"""perpquant.backtest.io

Lightweight IO helpers for backtesting.

Candle CSV schema:
- required: time (ms), and price or close

Funding CSV schema:
- required: time (ms), funding_rate
- optional: premium (defaults to 0)

Rows with a missing/non-finite time or a non-positive price are dropped; the
engine expects clean, positive prices.
"""

from __future__ import annotations

import csv
import math
from pathlib import Path

from perpquant.backtest.types import CandlePoint, FundingPoint


def _read_rows(path: str | Path) -> list[dict[str, str]]:
    p = Path(path)
    rows: list[dict[str, str]] = []
    with p.open("r", encoding="utf-8") as f:
        r = csv.DictReader(f)
        for row in r:
            rows.append({k.strip(): (v.strip() if isinstance(v, str) else "") for k, v in row.items() if k is not None})
    return rows


def _num(v: str | None) -> float | None:
    if v is None or v == "":
        return None
    try:
        n = float(v)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def load_candles_csv(path: str | Path) -> list[CandlePoint]:
    rows = _read_rows(path)
    if not rows:
        return []

    cols = rows[0].keys()
    if "time" not in cols:
        raise ValueError("CSV missing required column: time")
    price_col = "price" if "price" in cols else "close" if "close" in cols else None
    if price_col is None:
        raise ValueError("CSV missing required column: price (or close)")

    out: list[CandlePoint] = []
    for row in rows:
        t = _num(row.get("time"))
        px = _num(row.get(price_col))
        if t is None or px is None or px <= 0:
            continue
        out.append(CandlePoint(time=int(t), price=px))
    out.sort(key=lambda c: c.time)
    return out


def load_funding_csv(path: str | Path) -> list[FundingPoint]:
    rows = _read_rows(path)
    if not rows:
        return []

    cols = rows[0].keys()
    for required in ("time", "funding_rate"):
        if required not in cols:
            raise ValueError(f"CSV missing required column: {required}")

    out: list[FundingPoint] = []
    for row in rows:
        t = _num(row.get("time"))
        if t is None:
            continue
        out.append(
            FundingPoint(
                time=int(t),
                funding_rate=_num(row.get("funding_rate")) or 0.0,
                premium=_num(row.get("premium")) or 0.0,
            )
        )
    out.sort(key=lambda f: f.time)
    return out
