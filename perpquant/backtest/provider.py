"""perpquant.backtest.provider

Where candles and funding come from.

The engine never fetches anything. Callers hand a ``DataProvider`` to
``simulate`` and the provider decides whether rows come from memory, a cache,
or a venue. No module-level handles: every provider is constructed and passed
explicitly.

``HistoryCache`` is the reference cache contract: given a symbol, an interval
and a time range, either the rows already cover the range (within a tolerance
at both edges) or the injected fetcher is called and its rows are upserted.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

from perpquant.backtest.engine import run_backtest
from perpquant.backtest.types import BacktestConfig, BacktestResult, CandlePoint, FundingPoint
from perpquant.core.exceptions import DataProviderError
from perpquant.core.time import HOUR_MS
from perpquant.strategy.perp_signal import SignalWeights

logger = logging.getLogger(__name__)

_SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,10}$")

FUNDING_INTERVAL = "funding"


def normalize_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    if not _SYMBOL_RE.match(s):
        raise DataProviderError(f"Invalid symbol: {symbol!r}")
    return s


def _check_range(start_time: int, end_time: int) -> None:
    if end_time <= start_time:
        raise DataProviderError("end_time must be > start_time")


@runtime_checkable
class DataProvider(Protocol):
    def load_candles(self, symbol: str, interval: str, start_time: int, end_time: int) -> list[CandlePoint]: ...

    def load_funding(self, symbol: str, start_time: int, end_time: int) -> list[FundingPoint]: ...


class InMemoryProvider:
    """Provider over rows already in memory. Ranges are inclusive at both ends."""

    def __init__(
        self,
        *,
        candles: dict[tuple[str, str], list[CandlePoint]] | None = None,
        funding: dict[str, list[FundingPoint]] | None = None,
    ) -> None:
        self._candles = {(normalize_symbol(s), i): sorted(rows, key=lambda c: c.time) for (s, i), rows in (candles or {}).items()}
        self._funding = {normalize_symbol(s): sorted(rows, key=lambda f: f.time) for s, rows in (funding or {}).items()}

    def load_candles(self, symbol: str, interval: str, start_time: int, end_time: int) -> list[CandlePoint]:
        rows = self._candles.get((normalize_symbol(symbol), interval), [])
        return [c for c in rows if start_time <= c.time <= end_time]

    def load_funding(self, symbol: str, start_time: int, end_time: int) -> list[FundingPoint]:
        rows = self._funding.get(normalize_symbol(symbol), [])
        return [f for f in rows if start_time <= f.time <= end_time]


class _Timed(Protocol):
    @property
    def time(self) -> int: ...


RowT = TypeVar("RowT", bound=_Timed)


@dataclass(frozen=True, slots=True)
class FetchRequest:
    symbol: str
    interval: str
    start_time: int
    end_time: int


@dataclass(frozen=True, slots=True)
class EnsureResult:
    fetched: bool
    row_count: int


class HistoryCache(Generic[RowT]):
    """Thread-safe time-series cache keyed by ``(symbol, interval)``.

    Rows are upserted by ``time``: a refetch overwrites, never duplicates.
    """

    def __init__(
        self,
        fetcher: Callable[[FetchRequest], Iterable[RowT]],
        *,
        default_tolerance_ms: int = HOUR_MS,
    ) -> None:
        self._fetcher = fetcher
        self._default_tolerance_ms = int(default_tolerance_ms)
        self._store: dict[tuple[str, str], dict[int, RowT]] = {}
        self._lock = threading.RLock()

    def _in_range(self, key: tuple[str, str], start_time: int, end_time: int) -> list[RowT]:
        rows = self._store.get(key, {})
        return [rows[t] for t in sorted(rows) if start_time <= t <= end_time]

    def ensure(
        self,
        symbol: str,
        interval: str,
        start_time: int,
        end_time: int,
        tolerance_ms: int | None = None,
    ) -> EnsureResult:
        sym = normalize_symbol(symbol)
        if not interval:
            raise DataProviderError("interval is required")
        _check_range(start_time, end_time)
        tol = self._default_tolerance_ms if tolerance_ms is None else int(tolerance_ms)
        key = (sym, interval)

        with self._lock:
            covered_rows = self._in_range(key, start_time, end_time)
            if covered_rows:
                lo, hi = covered_rows[0].time, covered_rows[-1].time
                if lo <= start_time + tol and hi >= end_time - tol:
                    return EnsureResult(fetched=False, row_count=len(covered_rows))

            req = FetchRequest(symbol=sym, interval=interval, start_time=start_time, end_time=end_time)
            try:
                fetched = list(self._fetcher(req))
            except Exception as e:
                raise DataProviderError(f"fetch failed for {sym} {interval}: {e}") from e

            bucket = self._store.setdefault(key, {})
            for row in fetched:
                bucket[int(row.time)] = row

        logger.info("history fetched: %s %s rows=%d", sym, interval, len(fetched))
        return EnsureResult(fetched=True, row_count=len(fetched))

    def load(self, symbol: str, interval: str, start_time: int, end_time: int) -> list[RowT]:
        with self._lock:
            return self._in_range((normalize_symbol(symbol), interval), start_time, end_time)


class CachedProvider:
    """``DataProvider`` that fills two ``HistoryCache``s on demand before reading."""

    def __init__(
        self,
        *,
        candles: HistoryCache[CandlePoint],
        funding: HistoryCache[FundingPoint] | None = None,
        interval_tolerance_ms: Callable[[str], int] | None = None,
    ) -> None:
        self.candles = candles
        self.funding = funding
        self._tolerance = interval_tolerance_ms

    def load_candles(self, symbol: str, interval: str, start_time: int, end_time: int) -> list[CandlePoint]:
        tol = self._tolerance(interval) if self._tolerance else None
        self.candles.ensure(symbol, interval, start_time, end_time, tol)
        return [c for c in self.candles.load(symbol, interval, start_time, end_time) if c.price > 0]

    def load_funding(self, symbol: str, start_time: int, end_time: int) -> list[FundingPoint]:
        if self.funding is None:
            return []
        self.funding.ensure(symbol, FUNDING_INTERVAL, start_time, end_time)
        return self.funding.load(symbol, FUNDING_INTERVAL, start_time, end_time)


def simulate(
    *,
    provider: DataProvider,
    symbol: str,
    interval: str,
    start_time: int,
    end_time: int,
    config: BacktestConfig,
    weights: SignalWeights | None = None,
) -> BacktestResult:
    """Load a symbol's series through ``provider`` and backtest it."""

    sym = normalize_symbol(symbol)
    _check_range(start_time, end_time)

    candles = provider.load_candles(sym, interval, start_time, end_time)
    # Loaded even with use_funding off: funding and premium still shape crowding.
    funding = provider.load_funding(sym, start_time, end_time)
    logger.info(
        "simulate %s %s: candles=%d funding=%d",
        sym,
        interval,
        len(candles),
        len(funding),
    )
    return run_backtest(candles=candles, funding=funding, config=config, weights=weights)
