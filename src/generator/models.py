"""
Data models and enums for the synthetic stream generator.
"""

from dataclasses import dataclass, field
from enum import Enum


class AnomalyType(Enum):
    """Types of anomalies that can be injected"""

    SCALE = "scale"  # Multiply the signal
    SHIFT = "shift"  # Add a level shift
    VARIANCE = "variance"  # Inflate the noise


@dataclass(frozen=True)
class InjectedAnomaly:
    """Anomaly applied to stream rows [start, end) of series [series_start, series_end)"""

    type: AnomalyType
    start: int
    end: int
    series_start: int
    series_end: int
    magnitude: float

    def covers(self, start: int, end: int) -> bool:
        """True if the anomaly overlaps rows [start, end)"""
        return self.start < end and start < self.end

    @property
    def series(self) -> range:
        return range(self.series_start, self.series_end)


@dataclass
class GeneratorConfig:
    """Configuration for the stream generator"""

    # Shape
    num_series: int = 100
    train_length: int = 250
    stream_length: int = 1500

    # Signal
    level: float = 10.0
    noise_sd: float = 1.0
    drift_per_step: float = 0.0  # Added to the level at each stream step
    seed: int = 0

    # Anomalies
    anomalies: list[InjectedAnomaly] = field(default_factory=list)

    def __post_init__(self):
        for anomaly in self.anomalies:
            if not 0 <= anomaly.start < anomaly.end <= self.stream_length:
                raise ValueError(f"Anomaly rows {anomaly.start}:{anomaly.end} are outside the stream")
            if not 0 <= anomaly.series_start < anomaly.series_end <= self.num_series:
                raise ValueError(
                    f"Anomaly series {anomaly.series_start}:{anomaly.series_end} do not exist"
                )
