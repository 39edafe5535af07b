"""
Synthetic Stream Generator
Simulates collections of time series with configurable injected anomalies.
"""

from .config import CLEAN_CONFIG, DEV_CONFIG, DRIFT_CONFIG, PAPER_CONFIG
from .generator import StreamGenerator
from .models import AnomalyType, GeneratorConfig, InjectedAnomaly

__all__ = [
    "AnomalyType",
    "GeneratorConfig",
    "InjectedAnomaly",
    "StreamGenerator",
    "PAPER_CONFIG",
    "DRIFT_CONFIG",
    "DEV_CONFIG",
    "CLEAN_CONFIG",
]

__version__ = "1.0.0"
