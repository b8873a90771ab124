"""perpquant.core.exceptions

Errors are part of the interface.

Two disciplines only:
- raise for caller mistakes (bad inputs, bad config)
- return ``None`` when the market simply has no answer
"""

from __future__ import annotations


class PerpQuantError(Exception):
    """Base exception for perpquant."""


class InputValidationError(PerpQuantError, ValueError):
    """Pricing inputs are outside the model's domain."""


class ConfigError(PerpQuantError):
    """Configuration is missing, invalid, or inconsistent."""


class DataProviderError(PerpQuantError):
    """A data provider or history cache could not satisfy a request."""
