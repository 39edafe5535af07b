"""
Synthetic collections of time series with injected anomalies.
"""

import numpy as np
import structlog

from .models import AnomalyType, GeneratorConfig

logger = structlog.get_logger(__name__)

# Autocorrelation of the noise process
AR_COEFFICIENT = 0.5


class StreamGenerator:
    """Generates training data and a test stream from one configuration"""

    def __init__(self, config: GeneratorConfig):
        self.config = config

        # Per-series offsets are shared by training and stream
        rng = np.random.default_rng([config.seed, 0])
        self.offsets = rng.normal(0, 0.1 * config.noise_sd, size=config.num_series)

        logger.info(
            "Initializing stream generator",
            num_series=config.num_series,
            train_length=config.train_length,
            stream_length=config.stream_length,
            anomalies=[a.type.value for a in config.anomalies],
        )

    def _noise(self, rng: np.random.Generator, length: int) -> np.ndarray:
        """AR(1) noise with marginal standard deviation noise_sd"""
        shocks = rng.normal(0, self.config.noise_sd, size=(length, self.config.num_series))
        shocks *= np.sqrt(1 - AR_COEFFICIENT**2)
        noise = np.empty_like(shocks)
        noise[0] = rng.normal(0, self.config.noise_sd, size=self.config.num_series)
        for t in range(1, length):
            noise[t] = AR_COEFFICIENT * noise[t - 1] + shocks[t]
        return noise

    def generate_training(self) -> np.ndarray:
        """Anomaly-free training matrix (train_length x num_series)"""
        rng = np.random.default_rng([self.config.seed, 1])
        level = self.config.level + self.offsets
        return level + self._noise(rng, self.config.train_length)

    def generate_stream(self) -> np.ndarray:
        """Stream matrix (stream_length x num_series) with anomalies applied"""
        config = self.config
        rng = np.random.default_rng([config.seed, 2])

        steps = np.arange(config.stream_length)[:, None]
        level = config.level + self.offsets + config.drift_per_step * steps
        noise = self._noise(rng, config.stream_length)

        for anomaly in config.anomalies:
            rows = slice(anomaly.start, anomaly.end)
            cols = slice(anomaly.series_start, anomaly.series_end)
            if anomaly.type == AnomalyType.VARIANCE:
                noise[rows, cols] *= anomaly.magnitude

        values = np.broadcast_to(level, noise.shape) + noise

        for anomaly in config.anomalies:
            rows = slice(anomaly.start, anomaly.end)
            cols = slice(anomaly.series_start, anomaly.series_end)
            if anomaly.type == AnomalyType.SCALE:
                values[rows, cols] *= anomaly.magnitude
            elif anomaly.type == AnomalyType.SHIFT:
                values[rows, cols] += anomaly.magnitude * config.noise_sd

        logger.info(
            "Stream generated",
            shape=values.shape,
            anomalies_injected=len(config.anomalies),
        )

        return values

    def anomalous_series(self, start: int, end: int) -> set[int]:
        """Series with an injected anomaly overlapping rows [start, end)"""
        series = set()
        for anomaly in self.config.anomalies:
            if anomaly.covers(start, end):
                series.update(anomaly.series)
        return series
