"""
Tests for the error taxonomy.
"""

import pytest

from src.core.errors import DriftTestFailure, InputError, NumericInstability, OddStreamError


class TestErrorHierarchy:
    """Tests for the exception classes."""

    @pytest.mark.parametrize("error_class", [InputError, NumericInstability, DriftTestFailure])
    def test_all_errors_share_base(self, error_class):
        """Every pipeline error can be caught as OddStreamError."""
        with pytest.raises(OddStreamError):
            raise error_class("boom")

    def test_input_error_is_value_error(self):
        """InputError is caught by code expecting ValueError."""
        assert issubclass(InputError, ValueError)

    def test_numeric_instability_is_arithmetic_error(self):
        """NumericInstability is caught by code expecting ArithmeticError."""
        assert issubclass(NumericInstability, ArithmeticError)

    def test_drift_failure_is_not_input_error(self):
        """Drift test failures are recoverable, not input problems."""
        assert not issubclass(DriftTestFailure, ValueError)
