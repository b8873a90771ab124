"""perpquant.quant.chain

Pure helpers for picking an at-the-money contract out of an option chain and
backing an implied vol out of its quote.

Fetching the chain is the caller's business; these functions only see lists.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from perpquant.core.time import DAY_MS, HOUR_MS, YEAR_MS
from perpquant.quant.bsm import OptionRight, implied_vol


@dataclass(frozen=True, slots=True)
class OptionContract:
    name: str
    expiry_ts: int  # ms
    strike: float
    right: OptionRight


@dataclass(frozen=True, slots=True)
class OptionQuote:
    bid: float | None = None
    ask: float | None = None
    mark: float | None = None


@dataclass(frozen=True, slots=True)
class AtmLeg:
    contract: OptionContract
    mid: float | None
    iv: float | None


@dataclass(frozen=True, slots=True)
class AtmSnapshot:
    spot: float
    expiry_ts: int
    strike: float
    years_to_expiry: float
    call: AtmLeg | None
    put: AtmLeg | None


def _positive(x: float | None) -> float | None:
    if x is None or not math.isfinite(x) or x <= 0:
        return None
    return float(x)


def mid_from_bid_ask(*, bid: float | None, ask: float | None, mark: float | None) -> float | None:
    """Two-sided mid if both sides are live, else mark, else whichever side exists."""

    b, a, m = _positive(bid), _positive(ask), _positive(mark)
    if b is not None and a is not None:
        return 0.5 * (b + a)
    if m is not None:
        return m
    if b is not None:
        return b
    return a


def pick_closest_expiry(expiries: Iterable[int], *, target_ts: int, min_ts: int) -> int | None:
    """Expiry closest to ``target_ts`` among those strictly after ``min_ts``. Ties go early."""

    valid = sorted({int(x) for x in expiries if x > min_ts})
    if not valid:
        return None
    return min(valid, key=lambda x: abs(x - target_ts))


def pick_atm_strike(strikes: Iterable[float], spot: float) -> float | None:
    """Strike closest to spot. Ties go to the lower strike."""

    valid = sorted({float(k) for k in strikes if math.isfinite(k) and k > 0})
    if not valid:
        return None
    return min(valid, key=lambda k: abs(k - spot))


def atm_snapshot(
    *,
    contracts: list[OptionContract],
    quotes: dict[str, OptionQuote],
    spot: float,
    now_ms: int,
    target_days: float = 7.0,
    min_hours: float = 6.0,
    r: float = 0.0,
    q: float = 0.0,
) -> AtmSnapshot | None:
    """Pick the ATM call/put near ``target_days`` out and imply vols from their mids.

    ``now_ms`` is passed in; nothing here reads a clock.
    """

    if not math.isfinite(spot) or spot <= 0:
        return None

    target_ts = now_ms + int(target_days * DAY_MS)
    min_ts = now_ms + int(min_hours * HOUR_MS)
    expiry = pick_closest_expiry((c.expiry_ts for c in contracts), target_ts=target_ts, min_ts=min_ts)
    if expiry is None:
        return None

    same_exp = [c for c in contracts if c.expiry_ts == expiry]
    strike = pick_atm_strike((c.strike for c in same_exp), spot)
    if strike is None:
        return None

    T = (expiry - now_ms) / YEAR_MS

    def leg(right: OptionRight) -> AtmLeg | None:
        contract = next((c for c in same_exp if c.right == right and c.strike == strike), None)
        if contract is None:
            return None
        quote = quotes.get(contract.name)
        mid = mid_from_bid_ask(bid=quote.bid, ask=quote.ask, mark=quote.mark) if quote else None
        iv = implied_vol(S=spot, K=strike, T=T, r=r, q=q, right=right, price=mid) if mid is not None else None
        return AtmLeg(contract=contract, mid=mid, iv=iv)

    return AtmSnapshot(
        spot=spot,
        expiry_ts=expiry,
        strike=strike,
        years_to_expiry=T,
        call=leg(OptionRight.CALL),
        put=leg(OptionRight.PUT),
    )
