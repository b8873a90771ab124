"""perpquant.quant.normal

Standard normal PDF and CDF.

The CDF is Abramowitz & Stegun 7.1.26 (absolute error < 7.5e-8). Fixed
coefficients keep every price in this package reproducible across platforms,
which ``math.erf`` does not promise.
"""

from __future__ import annotations

import math
from typing import Final

SQRT_2PI: Final[float] = math.sqrt(2.0 * math.pi)

_P: Final[float] = 0.2316419
_B: Final[tuple[float, float, float, float, float]] = (
    0.319381530,
    -0.356563782,
    1.781477937,
    -1.821255978,
    1.330274429,
)


def norm_pdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / SQRT_2PI


def norm_cdf(x: float) -> float:
    if not math.isfinite(x):
        return 1.0 if x == math.inf else 0.0

    ax = abs(x)
    t = 1.0 / (1.0 + _P * ax)

    # Horner form of b1*t + b2*t^2 + ... + b5*t^5
    poly = 0.0
    for b in reversed(_B):
        poly = (poly + b) * t

    upper = 1.0 - norm_pdf(ax) * poly
    return upper if x >= 0 else 1.0 - upper
