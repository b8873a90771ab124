"""perpquant.quant

Closed-form option math and volatility estimators.
"""

from __future__ import annotations

from perpquant.quant.bsm import BSMResult, OptionInputs, OptionRight, bsm, bsm_d1_d2, bsm_price, implied_vol
from perpquant.quant.normal import norm_cdf, norm_pdf
from perpquant.quant.vol import realized_vol, rolling_annualized_vol

__all__ = [
    "BSMResult",
    "OptionInputs",
    "OptionRight",
    "bsm",
    "bsm_d1_d2",
    "bsm_price",
    "implied_vol",
    "norm_cdf",
    "norm_pdf",
    "realized_vol",
    "rolling_annualized_vol",
]
