"""
Predefined configurations for different detection scenarios.
"""

from .models import AnomalyType, GeneratorConfig, InjectedAnomaly

# Two bursts on a block of five series, as in the classic sensor example
PAPER_CONFIG = GeneratorConfig(
    num_series=100,
    train_length=250,
    stream_length=15000,
    anomalies=[
        InjectedAnomaly(AnomalyType.SCALE, 360, 1060, 20, 25, magnitude=1.75),
        InjectedAnomaly(AnomalyType.SCALE, 2550, 3550, 20, 25, magnitude=2.0),
    ],
)


# Slowly rising level on every series plus one level shift
DRIFT_CONFIG = GeneratorConfig(
    num_series=100,
    train_length=250,
    stream_length=3000,
    drift_per_step=0.002,
    anomalies=[
        InjectedAnomaly(AnomalyType.SHIFT, 1500, 1750, 40, 44, magnitude=6.0),
    ],
)


# Development/Testing (fast and small)
DEV_CONFIG = GeneratorConfig(
    num_series=60,
    train_length=100,
    stream_length=400,
    anomalies=[
        InjectedAnomaly(AnomalyType.VARIANCE, 200, 300, 10, 13, magnitude=4.0),
    ],
)


# No anomalies at all
CLEAN_CONFIG = GeneratorConfig(num_series=100, train_length=250, stream_length=1000)
