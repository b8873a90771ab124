"""perpquant.strategy

Signals that drive the simulator and grade live positions.
"""

from __future__ import annotations

from perpquant.strategy.perp_signal import (
    HealthAction,
    PerpHealth,
    PerpSide,
    PerpSignal,
    SignalWeights,
    compute_perp_contrarian_signal,
    health_for_position,
    sigma_move_z,
)

__all__ = [
    "HealthAction",
    "PerpHealth",
    "PerpSide",
    "PerpSignal",
    "SignalWeights",
    "compute_perp_contrarian_signal",
    "health_for_position",
    "sigma_move_z",
]
