from __future__ import annotations

import pytest

from perpquant.core.exceptions import ConfigError, DataProviderError, InputValidationError, PerpQuantError


def test_exception_hierarchy_is_structural() -> None:
    assert issubclass(InputValidationError, PerpQuantError)
    assert issubclass(ConfigError, PerpQuantError)
    assert issubclass(DataProviderError, PerpQuantError)


def test_input_validation_is_a_value_error() -> None:
    with pytest.raises(ValueError) as e:
        raise InputValidationError("S must be > 0")
    assert "S must be" in str(e.value)
