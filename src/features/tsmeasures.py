"""
Time-series measures feature extractor.

Each series is summarised by a fixed set of descriptive statistics:
location and spread, block and rolling-window structure, the shape of a
smoothed trend, burstiness, extremes and tail ratios. With a seasonal period
greater than one the trend comes from a robust STL decomposition and the
seasonal strength, peak and trough are added.

Workflow per series:
1. Rolling statistics on the full series (missing values skipped)
2. Trend on the longest contiguous non-missing stretch (lowess or STL)
3. Remainder-based and distribution-based statistics
"""

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
import structlog
from statsmodels.nonparametric.smoothers_lowess import lowess
from statsmodels.tsa.seasonal import STL

from .base import FeatureExtractor, FeatureMatrix

logger = structlog.get_logger(__name__)

BASE_FEATURES = (
    "mean",
    "var",
    "lumpiness",
    "level_shift",
    "variance_change",
    "linearity",
    "curvature",
    "spikiness",
)
SEASONAL_FEATURES = ("season", "peak", "trough")
DISTRIBUTION_FEATURES = ("burstiness", "min", "max", "rmeaniqmean", "moment3", "highlowmu")


@dataclass
class TSMeasuresConfig:
    """Configuration for the time-series measures extractor"""

    period: int = 1  # Seasonal period, 1 for non-seasonal data
    lowess_frac: float = 2 / 3  # Fraction of points used for each lowess fit
    n_jobs: int = 1  # Threads used to compute series in parallel


class TSMeasuresExtractor(FeatureExtractor):
    """Descriptive statistics per series, one row per column of the input"""

    def __init__(self, config: dict | None = None):
        """Initialize with configuration

        Args:
            config: Dictionary with keys matching TSMeasuresConfig fields
        """
        self.config = TSMeasuresConfig(**(config or {}))
        if self.config.period < 1:
            raise ValueError(f"Period must be >= 1, got {self.config.period}")
        if self.config.n_jobs < 1:
            raise ValueError(f"n_jobs must be >= 1, got {self.config.n_jobs}")
        self._name = "tsmeasures"

    @property
    def name(self) -> str:
        return self._name

    @property
    def feature_names(self) -> tuple[str, ...]:
        if self.config.period > 1:
            return BASE_FEATURES + SEASONAL_FEATURES + DISTRIBUTION_FEATURES
        return BASE_FEATURES + DISTRIBUTION_FEATURES

    def get_config(self) -> dict[str, Any]:
        return {
            "period": self.config.period,
            "lowess_frac": self.config.lowess_frac,
            "n_jobs": self.config.n_jobs,
        }

    def extract(self, data: np.ndarray, width: int) -> FeatureMatrix:
        """Compute the feature vector of every series

        Args:
            data: T x N array, missing values encoded as NaN
            width: Block / rolling window width

        Returns:
            FeatureMatrix with all-missing series marked as excluded
        """
        data = np.asarray(data, dtype=float)
        self.validate_matrix(data, width)

        excluded = np.isnan(data).all(axis=0)
        columns = [data[:, j] for j in range(data.shape[1])]

        if self.config.n_jobs == 1:
            rows = [self._series_features(column, width) for column in columns]
        else:
            with ThreadPoolExecutor(max_workers=self.config.n_jobs) as pool:
                rows = list(pool.map(lambda column: self._series_features(column, width), columns))

        values = np.vstack(rows)
        values[excluded] = np.nan

        logger.debug(
            "Features extracted",
            n_series=data.shape[1],
            n_points=data.shape[0],
            n_excluded=int(excluded.sum()),
            width=width,
        )

        return FeatureMatrix(values=values, names=self.feature_names, excluded=excluded)

    def _series_features(self, x: np.ndarray, width: int) -> np.ndarray:
        """Feature vector of a single series

        Statistics that are undefined for the series (a constant series, a
        stretch too short for a trend) are 0, so only all-missing series are
        left out of scoring.
        """
        names = self.feature_names
        if np.isnan(x).all():
            return np.full(len(names), np.nan)

        # Short or constant series produce undefined statistics
        with warnings.catch_warnings(), np.errstate(divide="ignore", invalid="ignore"):
            warnings.simplefilter("ignore", RuntimeWarning)

            measures = {
                "mean": np.nanmean(x),
                "var": np.nanvar(x, ddof=1),
                "lumpiness": _lumpiness(x, width),
                "level_shift": _rolling_shift(x, width, "mean"),
                "variance_change": _rolling_shift(x, width, "var"),
            }
            measures.update(self._trend_features(x))
            measures.update(_distribution_features(x))

        values = np.array([measures[name] for name in names], dtype=float)
        return np.nan_to_num(values, nan=0.0, posinf=0.0, neginf=0.0)

    def _trend_features(self, x: np.ndarray) -> dict[str, float]:
        """Trend shape, spikiness and (optionally) seasonal features"""
        period = self.config.period
        names = ("linearity", "curvature", "spikiness")
        if period > 1:
            names = names + SEASONAL_FEATURES

        contiguous = _longest_run(x)
        n = len(contiguous)
        if n < max(2 * period, 4):
            return dict.fromkeys(names, np.nan)

        measures = {}
        if period > 1:
            # Large odd seasonal smoother approximates a periodic seasonal component
            stl = STL(contiguous, period=period, seasonal=n if n % 2 else n + 1, robust=True).fit()
            trend = np.asarray(stl.trend)
            seasonal = np.asarray(stl.seasonal)
            remainder = np.asarray(stl.resid)

            detrended = contiguous - trend
            var_detrended = np.var(detrended, ddof=1)
            var_adjusted = np.var(remainder, ddof=1)
            if var_detrended < 1e-10:
                measures["season"] = 0.0
            else:
                measures["season"] = float(np.clip(1 - var_adjusted / var_detrended, 0, 1))

            peak_position = (int(np.argmax(seasonal)) + 1) % period or period
            trough_position = (int(np.argmin(seasonal)) + 1) % period or period
            measures["peak"] = float(peak_position * seasonal.max())
            measures["trough"] = float(trough_position * seasonal.min())
        else:
            t = np.arange(n, dtype=float)
            trend = lowess(
                contiguous,
                t,
                frac=self.config.lowess_frac,
                it=0,
                delta=0.01 * n,
                return_sorted=False,
            )
            remainder = contiguous - trend

        measures["linearity"], measures["curvature"] = _poly_coefficients(trend)
        measures["spikiness"] = _spikiness(remainder)

        return measures


def _longest_run(x: np.ndarray) -> np.ndarray:
    """Longest contiguous stretch without missing values (first one on ties)"""
    valid = ~np.isnan(x)
    if valid.all():
        return x

    edges = np.diff(np.concatenate(([0], valid.astype(int), [0])))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)
    if len(starts) == 0:
        return x[:0]

    longest = int(np.argmax(ends - starts))
    return x[starts[longest] : ends[longest]]


def _lumpiness(x: np.ndarray, width: int) -> float:
    """Variance of the variances of non-overlapping blocks of ``width`` points"""
    n_blocks = len(x) // width
    if n_blocks < 2:
        return np.nan

    blocks = x[: n_blocks * width].reshape(n_blocks, width)
    block_variances = np.nanvar(blocks, axis=1, ddof=1)
    return float(np.nanvar(block_variances, ddof=1))


def _rolling_shift(x: np.ndarray, width: int, statistic: str) -> float:
    """Largest absolute change of a rolling statistic between windows ``width`` apart"""
    rolling = pd.Series(x).rolling(width, min_periods=2)
    values = rolling.mean() if statistic == "mean" else rolling.var()

    # Keep complete windows only
    shifts = values.iloc[width - 1 :].diff(width).abs().dropna()
    if shifts.empty:
        return np.nan
    return float(shifts.max())


def _poly_coefficients(trend: np.ndarray) -> tuple[float, float]:
    """Linear and quadratic coefficients on an orthonormal polynomial basis"""
    n = len(trend)
    t = np.arange(n, dtype=float)
    t -= t.mean()
    basis, _ = np.linalg.qr(np.column_stack([np.ones(n), t, t**2]))
    basis = basis[:, 1:]

    # Orientation: increasing linear term, convex quadratic term
    if basis[-1, 0] < basis[0, 0]:
        basis[:, 0] *= -1
    if basis[0, 1] < 0:
        basis[:, 1] *= -1

    linearity, curvature = basis.T @ trend
    return float(linearity), float(curvature)


def _spikiness(remainder: np.ndarray) -> float:
    """Variance of the leave-one-out variances of the remainder"""
    n = len(remainder)
    v = np.var(remainder, ddof=1)
    d = (remainder - remainder.mean()) ** 2
    leave_one_out = (v * (n - 1) - d) / (n - 2)
    return float(np.var(leave_one_out, ddof=1))


def _ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, 0 when the denominator is 0 or undefined"""
    if not np.isfinite(denominator) or denominator == 0:
        return 0.0
    return float(numerator / denominator)


def _distribution_features(x: np.ndarray) -> dict[str, float]:
    """Burstiness, extremes and tail ratios, missing values ignored"""
    mu = np.nanmean(x)
    sd = np.nanstd(x, ddof=1) if np.count_nonzero(~np.isnan(x)) > 1 else 0.0
    upper = x[x > mu]
    lower = x[x < mu]

    # A series without points on both sides of its mean has no tail ratio
    if len(upper) and len(lower):
        highlowmu = _ratio(np.mean(upper) - mu, mu - np.mean(lower))
    else:
        highlowmu = 0.0

    return {
        "burstiness": _ratio(sd**2, mu),
        "min": float(np.nanmin(x)),
        "max": float(np.nanmax(x)),
        "rmeaniqmean": _ratio(np.nanmedian(x), mu),
        "moment3": _ratio(np.nanmean((x - mu) ** 3), sd),
        "highlowmu": highlowmu,
    }
