"""perpquant: closed-form option math and a perp backtest simulator.

Two halves that share one vocabulary:

- ``perpquant.quant``: Black-Scholes-Merton pricing, greeks, implied and realized vol.
- ``perpquant.backtest``: a single-pass, single-position simulator driven by sigma moves.

Everything here is a pure function of its inputs. No clocks, no randomness, no IO
outside ``perpquant.backtest.io`` and the CLI.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
