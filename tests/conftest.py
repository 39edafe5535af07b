"""
Pytest configuration and shared fixtures.
"""

import numpy as np
import pytest

from src.detection.models import DetectorConfig
from src.generator.generator import StreamGenerator
from src.generator.models import AnomalyType, GeneratorConfig, InjectedAnomaly


# Generator fixtures
@pytest.fixture
def small_config():
    """Small generator configuration with one scaled block of series."""
    return GeneratorConfig(
        num_series=60,
        train_length=100,
        stream_length=500,
        seed=7,
        anomalies=[
            InjectedAnomaly(AnomalyType.SCALE, 200, 300, 10, 14, magnitude=2.0),
        ],
    )


@pytest.fixture
def clean_config():
    """Small generator configuration without anomalies."""
    return GeneratorConfig(num_series=60, train_length=100, stream_length=500, seed=11)


@pytest.fixture
def small_generator(small_config):
    return StreamGenerator(small_config)


@pytest.fixture
def train_data(small_generator):
    return small_generator.generate_training()


@pytest.fixture
def stream_data(small_generator):
    return small_generator.generate_stream()


# Detection fixtures
@pytest.fixture
def fast_config():
    """Detector configuration with few Monte-Carlo trials for fast tests."""
    return DetectorConfig(trials=50, seed=0)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(1234)
