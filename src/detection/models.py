"""
Data models and configuration for the streaming detector.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import pandas as pd

from src.core.errors import InputError

from .projection import ProjectionModel
from .threshold import ThresholdModel


@dataclass
class DetectorConfig:
    """Configuration for the streaming detector"""

    # Threshold calibration
    p_rate: float = 0.001  # Target false positive rate
    trials: int = 500  # Monte-Carlo batches
    seed: int = 0
    n_jobs: int = 1  # Threads for Monte-Carlo trials

    # Windowing (None resolves against the training / window length)
    window_length: Optional[int] = None
    window_skip: Optional[int] = None

    # Concept drift
    concept_drift: bool = False
    cd_alpha: float = 0.05
    majority_fraction: float = 0.5  # Outlier share above which the full window is tested
    drift_permutations: int = 199
    drift_min_points: int = 10

    # Projection
    robust: bool = True
    k: int = 2

    # Feature extraction
    extractor_name: str = "tsmeasures"
    extractor_config: dict = field(default_factory=dict)
    feature_width: int = 10

    def validate(self) -> None:
        """Check every field, raising InputError with all problems found"""
        problems = []

        if not 0 < self.p_rate < 1:
            problems.append(f"p_rate must be in (0, 1), got {self.p_rate}")
        if self.trials < 1:
            problems.append(f"trials must be a positive integer, got {self.trials}")
        if self.seed < 0:
            problems.append(f"seed must be non-negative, got {self.seed}")
        if self.n_jobs < 1:
            problems.append(f"n_jobs must be >= 1, got {self.n_jobs}")
        if self.window_length is not None and self.window_length < 1:
            problems.append(f"window_length must be a positive integer, got {self.window_length}")
        if self.window_skip is not None and self.window_skip < 1:
            problems.append(f"window_skip must be a positive integer, got {self.window_skip}")
        if not 0 < self.cd_alpha < 1:
            problems.append(f"cd_alpha must be in (0, 1), got {self.cd_alpha}")
        if not 0 < self.majority_fraction <= 1:
            problems.append(f"majority_fraction must be in (0, 1], got {self.majority_fraction}")
        if self.drift_permutations < 1:
            problems.append(f"drift_permutations must be >= 1, got {self.drift_permutations}")
        if self.drift_min_points < 3:
            problems.append(f"drift_min_points must be >= 3, got {self.drift_min_points}")
        if self.k < 2:
            problems.append(f"k must be >= 2, got {self.k}")
        if self.feature_width < 2:
            problems.append(f"feature_width must be >= 2, got {self.feature_width}")

        if problems:
            raise InputError("Invalid configuration: " + "; ".join(problems))


@dataclass(frozen=True, eq=False)
class TimeSeriesCollection:
    """T time steps x N series, missing values stored as NaN, read-only"""

    values: np.ndarray
    missing_value: float = np.nan

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        if values.ndim != 2:
            raise InputError(f"Expected a 2D matrix of series, got {values.ndim} dimensions")
        if values.size == 0:
            raise InputError("Time series collection is empty")

        if self.missing_value is not None and not np.isnan(self.missing_value):
            values[values == self.missing_value] = np.nan

        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_array(cls, values, missing_value: float = np.nan) -> "TimeSeriesCollection":
        return cls(values=values, missing_value=missing_value)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, missing_value: float = np.nan) -> "TimeSeriesCollection":
        """Columns are series, rows are time steps"""
        return cls(values=frame.to_numpy(dtype=float), missing_value=missing_value)

    @property
    def length(self) -> int:
        return self.values.shape[0]

    @property
    def n_series(self) -> int:
        return self.values.shape[1]

    @property
    def excluded_series(self) -> np.ndarray:
        """True for series with no observed value"""
        return np.isnan(self.values).all(axis=0)

    def window(self, start: int, end: int) -> np.ndarray:
        """Read-only view of rows [start, end)"""
        return self.values[start:end]


@dataclass(frozen=True)
class Window:
    """Half-open range [start, end) over the stream"""

    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class OutlierReport:
    """Outlying series of one evaluated window"""

    window_index: int
    window_start: int
    window_end: int
    outlier_series_indices: tuple[int, ...]
    excluded_series: tuple[int, ...] = ()
    unreliable: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "window_index": self.window_index,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "outlier_series_indices": list(self.outlier_series_indices),
            "excluded_series": list(self.excluded_series),
            "unreliable": self.unreliable,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DriftDiagnostic:
    """Recorded when a window triggered a model update"""

    drift_p_value: float
    updated_threshold: float
    n_tested: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "drift_p_value": self.drift_p_value,
            "updated_threshold": self.updated_threshold,
            "n_tested": self.n_tested,
        }


@dataclass(frozen=True, eq=False)
class ModelState:
    """Projection and threshold that are always read and replaced together"""

    projection: ProjectionModel
    threshold: ThresholdModel

    def snapshot(self) -> dict[str, Any]:
        """Serializable view for renderers and persistence"""
        return {
            "projection": self.projection.to_dict(),
            "threshold": self.threshold.to_dict(),
        }


@dataclass
class DetectionResult:
    """Everything a run produced, in window order"""

    reports: list[OutlierReport]
    diagnostics: list[Optional[DriftDiagnostic]]
    initial_state: ModelState
    final_state: ModelState
    cancelled: bool = False

    @property
    def n_windows(self) -> int:
        return len(self.reports)

    def outliers_by_window(self) -> dict[tuple[int, int], tuple[int, ...]]:
        """Map (start, end) to the outlying series of that window"""
        return {
            (report.window_start, report.window_end): report.outlier_series_indices
            for report in self.reports
        }

    def to_records(self) -> list[dict[str, Any]]:
        """One dict per window, diagnostics merged in"""
        records = []
        for report, diagnostic in zip(self.reports, self.diagnostics):
            record = report.to_dict()
            record["drift"] = diagnostic.to_dict() if diagnostic else None
            records.append(record)
        return records
