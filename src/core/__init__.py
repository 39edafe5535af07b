"""
Core utilities shared across the application.
"""

from .errors import DriftTestFailure, InputError, NumericInstability, OddStreamError
from .logger import setup_logging

__all__ = [
    "DriftTestFailure",
    "InputError",
    "NumericInstability",
    "OddStreamError",
    "setup_logging",
]
