"""
Error taxonomy for the detection pipeline.

- InputError: fatal, raised before any window is evaluated
- NumericInstability: recoverable per window, the previous model state is kept
- DriftTestFailure: recoverable, adaptation is skipped for the window
"""


class OddStreamError(Exception):
    """Base class for all pipeline errors"""


class InputError(OddStreamError, ValueError):
    """Invalid input data or configuration"""


class NumericInstability(OddStreamError, ArithmeticError):
    """Singular matrices, non-finite densities or a degenerate calibration"""


class DriftTestFailure(OddStreamError):
    """The two-sample drift test could not be computed"""
