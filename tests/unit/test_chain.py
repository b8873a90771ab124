from __future__ import annotations

import pytest

from perpquant.core.time import DAY_MS, HOUR_MS, YEAR_MS
from perpquant.quant.bsm import OptionInputs, OptionRight, bsm_price
from perpquant.quant.chain import (
    OptionContract,
    OptionQuote,
    atm_snapshot,
    mid_from_bid_ask,
    pick_atm_strike,
    pick_closest_expiry,
)

NOW = 1_700_000_000_000


def test_mid_prefers_two_sided_then_mark() -> None:
    assert mid_from_bid_ask(bid=1.0, ask=3.0, mark=5.0) == 2.0
    assert mid_from_bid_ask(bid=0.0, ask=3.0, mark=5.0) == 5.0
    assert mid_from_bid_ask(bid=None, ask=3.0, mark=None) == 3.0
    assert mid_from_bid_ask(bid=float("nan"), ask=None, mark=-1.0) is None


def test_pick_closest_expiry_respects_min_and_ties_early() -> None:
    expiries = [NOW + HOUR_MS, NOW + 5 * DAY_MS, NOW + 9 * DAY_MS]
    target = NOW + 7 * DAY_MS
    assert pick_closest_expiry(expiries, target_ts=target, min_ts=NOW + 6 * HOUR_MS) == NOW + 5 * DAY_MS
    assert pick_closest_expiry([NOW + HOUR_MS], target_ts=target, min_ts=NOW + 6 * HOUR_MS) is None


def test_pick_atm_strike_ties_to_lower() -> None:
    assert pick_atm_strike([90.0, 110.0, 130.0], 100.0) == 90.0
    assert pick_atm_strike([95.0, 100.0, 105.0], 101.0) == 100.0
    assert pick_atm_strike([], 100.0) is None


def _chain(expiry: int) -> list[OptionContract]:
    out: list[OptionContract] = []
    for k in (90.0, 100.0, 110.0):
        out.append(OptionContract(name=f"C-{k:g}", expiry_ts=expiry, strike=k, right=OptionRight.CALL))
        out.append(OptionContract(name=f"P-{k:g}", expiry_ts=expiry, strike=k, right=OptionRight.PUT))
    return out


def test_atm_snapshot_recovers_vol_from_mids() -> None:
    expiry = NOW + 7 * DAY_MS
    contracts = _chain(expiry)
    T = (expiry - NOW) / YEAR_MS
    call_px = bsm_price(OptionInputs(S=101.0, K=100.0, T=T, sigma=0.6, r=0.0), OptionRight.CALL)
    put_px = bsm_price(OptionInputs(S=101.0, K=100.0, T=T, sigma=0.6, r=0.0), OptionRight.PUT)
    quotes = {
        "C-100": OptionQuote(bid=call_px, ask=call_px),
        "P-100": OptionQuote(mark=put_px),
    }

    snap = atm_snapshot(contracts=contracts, quotes=quotes, spot=101.0, now_ms=NOW)
    assert snap is not None
    assert snap.strike == 100.0
    assert snap.expiry_ts == expiry
    assert snap.years_to_expiry == pytest.approx(7 / 365)
    assert snap.call is not None and snap.call.iv == pytest.approx(0.6, abs=1e-6)
    assert snap.put is not None and snap.put.iv == pytest.approx(0.6, abs=1e-6)


def test_atm_snapshot_missing_quote_and_bad_spot() -> None:
    expiry = NOW + 7 * DAY_MS
    snap = atm_snapshot(contracts=_chain(expiry), quotes={}, spot=100.0, now_ms=NOW)
    assert snap is not None
    assert snap.call is not None and snap.call.mid is None and snap.call.iv is None

    assert atm_snapshot(contracts=_chain(expiry), quotes={}, spot=0.0, now_ms=NOW) is None
    assert atm_snapshot(contracts=[], quotes={}, spot=100.0, now_ms=NOW) is None
