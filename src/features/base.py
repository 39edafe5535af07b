"""
Base abstract interface for per-series feature extractors.

An extractor turns a T x N matrix (time steps x series, missing values as NaN)
into an N x D feature matrix. It must be deterministic for a fixed input and
must mark all-missing series as excluded instead of failing.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Per-series feature vectors aligned by series index"""

    values: np.ndarray  # N x D
    names: tuple[str, ...]
    excluded: np.ndarray  # N booleans, True for all-missing series

    def __post_init__(self):
        if self.values.ndim != 2:
            raise ValueError("Feature values must be a 2D array")
        if self.values.shape[1] != len(self.names):
            raise ValueError(
                f"Got {self.values.shape[1]} feature columns for {len(self.names)} names"
            )
        if self.excluded.shape != (self.values.shape[0],):
            raise ValueError("Excluded mask must have one entry per series")

    @property
    def n_series(self) -> int:
        return self.values.shape[0]

    @property
    def n_features(self) -> int:
        return self.values.shape[1]

    @property
    def usable(self) -> np.ndarray:
        """Series that are not excluded and have every feature finite"""
        return ~self.excluded & np.isfinite(self.values).all(axis=1)

    def to_frame(self) -> pd.DataFrame:
        """Convert to a DataFrame indexed by series position"""
        frame = pd.DataFrame(self.values, columns=list(self.names))
        frame["excluded"] = self.excluded
        return frame


class FeatureExtractor(ABC):
    """Abstract base class for all feature extractors

    Each extractor must implement:
    1. extract() - Compute one fixed-length feature vector per series
    2. feature_names - The ordered names of those features
    """

    @abstractmethod
    def extract(self, data: np.ndarray, width: int) -> FeatureMatrix:
        """Compute features for every series (column) of the matrix

        Args:
            data: T x N array, missing values encoded as NaN
            width: Window width used by the rolling statistics

        Returns:
            FeatureMatrix with one row per column of ``data``
        """
        pass

    @property
    @abstractmethod
    def feature_names(self) -> tuple[str, ...]:
        """Ordered names of the extracted features"""
        pass

    @abstractmethod
    def get_config(self) -> dict[str, Any]:
        """Get the current configuration of this extractor"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the extractor"""
        pass

    def validate_matrix(self, data: np.ndarray, width: int) -> None:
        """Validate the input matrix and width

        Raises:
            ValueError: If the matrix or width is invalid
        """
        if data.ndim != 2:
            raise ValueError(f"Expected a 2D matrix, got {data.ndim} dimensions")

        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ValueError("Matrix is empty")

        if width < 2:
            raise ValueError(f"Width must be at least 2, got {width}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.get_config()})"
