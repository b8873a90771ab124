"""perpquant.quant.bsm

Black-Scholes-Merton for European options with a continuous rate ``r`` and a
continuous yield ``q`` (dividend, borrow, or funding carry).

Conventions:
- ``T`` in years, ``sigma`` annualized
- vega per 1.00 vol (not per 1%)
- theta per year (not per day)
- rho per 1.00 rate (not per 1%)

Two degenerate branches are handled in closed form and never touch d1/d2:
``T == 0`` (intrinsic) and ``sigma == 0`` (discounted deterministic forward).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum

from perpquant.core.exceptions import InputValidationError
from perpquant.quant.normal import norm_cdf, norm_pdf


class OptionRight(StrEnum):
    CALL = "call"
    PUT = "put"


@dataclass(frozen=True, slots=True)
class OptionInputs:
    S: float  # spot
    K: float  # strike
    T: float  # years to expiry
    sigma: float  # annualized vol
    r: float  # continuously-compounded rate
    q: float = 0.0  # continuously-compounded yield


@dataclass(frozen=True, slots=True)
class BSMResult:
    right: OptionRight
    price: float
    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float
    d1: float
    d2: float


def _validate(inputs: OptionInputs) -> None:
    if not math.isfinite(inputs.S) or inputs.S <= 0:
        raise InputValidationError("S must be > 0")
    if not math.isfinite(inputs.K) or inputs.K <= 0:
        raise InputValidationError("K must be > 0")
    if not math.isfinite(inputs.T) or inputs.T < 0:
        raise InputValidationError("T must be >= 0")
    if not math.isfinite(inputs.sigma) or inputs.sigma < 0:
        raise InputValidationError("sigma must be >= 0")
    if not math.isfinite(inputs.r):
        raise InputValidationError("r must be finite")
    if not math.isfinite(inputs.q):
        raise InputValidationError("q must be finite")


def _intrinsic(S: float, K: float, right: OptionRight) -> float:
    return max(S - K, 0.0) if right == OptionRight.CALL else max(K - S, 0.0)


def bsm_d1_d2(inputs: OptionInputs) -> tuple[float, float]:
    """Return ``(d1, d2)``; both ``nan`` when ``T == 0`` or ``sigma == 0``."""

    _validate(inputs)
    S, K, T, sigma, r, q = inputs.S, inputs.K, inputs.T, inputs.sigma, inputs.r, inputs.q
    if T == 0 or sigma == 0:
        return math.nan, math.nan

    vsqrt = sigma * math.sqrt(T)
    d1 = (math.log(S / K) + (r - q + 0.5 * sigma * sigma) * T) / vsqrt
    return d1, d1 - vsqrt


def bsm_price(inputs: OptionInputs, right: OptionRight | str) -> float:
    _validate(inputs)
    right = OptionRight(right)
    S, K, T, sigma, r, q = inputs.S, inputs.K, inputs.T, inputs.sigma, inputs.r, inputs.q

    if T == 0:
        return _intrinsic(S, K, right)

    if sigma == 0:
        fwd = S * math.exp((r - q) * T)
        return math.exp(-r * T) * _intrinsic(fwd, K, right)

    d1, d2 = bsm_d1_d2(inputs)
    dfq = math.exp(-q * T)
    dfr = math.exp(-r * T)

    if right == OptionRight.CALL:
        return S * dfq * norm_cdf(d1) - K * dfr * norm_cdf(d2)
    return K * dfr * norm_cdf(-d2) - S * dfq * norm_cdf(-d1)


def bsm(inputs: OptionInputs, right: OptionRight | str) -> BSMResult:
    """Price plus the five standard greeks."""

    _validate(inputs)
    right = OptionRight(right)
    is_call = right == OptionRight.CALL
    S, K, T, sigma, r, q = inputs.S, inputs.K, inputs.T, inputs.sigma, inputs.r, inputs.q

    if T == 0:
        if is_call:
            delta = 1.0 if S > K else 0.0
        else:
            delta = -1.0 if S < K else 0.0
        return BSMResult(
            right=right,
            price=_intrinsic(S, K, right),
            delta=delta,
            gamma=0.0,
            vega=0.0,
            theta=0.0,
            rho=0.0,
            d1=math.nan,
            d2=math.nan,
        )

    dfq = math.exp(-q * T)
    dfr = math.exp(-r * T)

    if sigma == 0:
        # Greeks are not well-behaved here; report the forward's delta and zeros.
        return BSMResult(
            right=right,
            price=bsm_price(inputs, right),
            delta=dfq if is_call else -dfq,
            gamma=0.0,
            vega=0.0,
            theta=0.0,
            rho=0.0,
            d1=math.nan,
            d2=math.nan,
        )

    d1, d2 = bsm_d1_d2(inputs)
    sqrt_t = math.sqrt(T)
    pdf1 = norm_pdf(d1)
    nd1 = norm_cdf(d1)
    nd2 = norm_cdf(d2)

    gamma = (dfq * pdf1) / (S * sigma * sqrt_t)
    vega = S * dfq * pdf1 * sqrt_t
    theta_common = -(S * dfq * pdf1 * sigma) / (2.0 * sqrt_t)

    if is_call:
        price = S * dfq * nd1 - K * dfr * nd2
        delta = dfq * nd1
        theta = theta_common - r * K * dfr * nd2 + q * S * dfq * nd1
        rho = K * T * dfr * nd2
    else:
        n_md1 = norm_cdf(-d1)
        n_md2 = norm_cdf(-d2)
        price = K * dfr * n_md2 - S * dfq * n_md1
        delta = dfq * (nd1 - 1.0)
        theta = theta_common + r * K * dfr * n_md2 - q * S * dfq * n_md1
        rho = -K * T * dfr * n_md2

    return BSMResult(
        right=right,
        price=price,
        delta=delta,
        gamma=gamma,
        vega=vega,
        theta=theta,
        rho=rho,
        d1=d1,
        d2=d2,
    )


# Implied vol search parameters.
IV_SIGMA_LO = 1e-6
IV_SIGMA_HI = 4.0
IV_SIGMA_CAP = 10.0
IV_EXPAND = 1.5
IV_MAX_ITER = 120
IV_PRICE_TOL = 1e-10
IV_SIGMA_TOL = 1e-8
IV_BOUND_EPS = 1e-12


def implied_vol(
    *,
    S: float,
    K: float,
    T: float,
    r: float,
    right: OptionRight | str,
    price: float,
    q: float = 0.0,
) -> float | None:
    """Invert ``bsm_price`` for sigma by bisection.

    Returns ``None`` when the quote sits outside the no-arbitrage band or no
    bracket exists below ``IV_SIGMA_CAP``. Bisection rather than Newton: deep
    OTM and short-dated quotes have vega close to zero.

    Raises:
        InputValidationError: if S, K, or T are outside the model's domain.
    """

    right = OptionRight(right)
    if not math.isfinite(price) or price < 0:
        return None
    if T == 0:
        _validate(OptionInputs(S=S, K=K, T=T, sigma=0.0, r=r, q=q))
        return 0.0

    dfq = math.exp(-q * T)
    dfr = math.exp(-r * T)
    if right == OptionRight.CALL:
        lower = max(S * dfq - K * dfr, 0.0)
        upper = S * dfq
    else:
        lower = max(K * dfr - S * dfq, 0.0)
        upper = K * dfr
    if price < lower - IV_BOUND_EPS or price > upper + IV_BOUND_EPS:
        return None

    def f(sigma: float) -> float:
        return bsm_price(OptionInputs(S=S, K=K, T=T, sigma=sigma, r=r, q=q), right) - price

    lo, hi = IV_SIGMA_LO, IV_SIGMA_HI
    f_lo = f(lo)
    f_hi = f(hi)
    while f_lo * f_hi > 0 and hi < IV_SIGMA_CAP:
        hi *= IV_EXPAND
        f_hi = f(hi)
    if f_lo * f_hi > 0:
        return None

    for _ in range(IV_MAX_ITER):
        mid = 0.5 * (lo + hi)
        f_mid = f(mid)
        if abs(f_mid) < IV_PRICE_TOL:
            return mid

        if f_lo * f_mid <= 0:
            hi = mid
        else:
            lo = mid
            f_lo = f_mid

        if abs(hi - lo) < IV_SIGMA_TOL:
            break

    return 0.5 * (lo + hi)
