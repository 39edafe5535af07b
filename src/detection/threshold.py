"""
Extreme-value calibration of the density threshold.

Workflow:
1. Fit a Gaussian KDE on the reference coordinates (SCV bandwidth)
2. Monte-Carlo: bootstrap m reference points, perturb each with N(0, H),
   evaluate the KDE at the perturbed points and keep the batch minimum
3. Map the minima through psi(x) = sqrt(-2 ln x - 2 ln 2 pi) and keep the
   fraction p of genuinely extreme values
4. Gumbel quantile at 1 - p_rate * p with the Fisher-Tippett constants for m
5. Back to density units: exp(-(t^2 + 2 ln 2 pi) / 2)

Each trial draws from its own generator seeded by (seed, trial), so the
minima do not depend on whether trials run sequentially or on a thread pool.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any

import numpy as np
import structlog

from src.core.errors import NumericInstability

from .density import LOG_2PI, KernelDensity, scv_bandwidth

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, eq=False)
class ThresholdModel:
    """Density cutoff together with the reference density it applies to"""

    threshold: float
    density: KernelDensity
    extreme_fraction: float
    p_rate: float
    trials: int
    seed: int

    @property
    def bandwidth(self) -> np.ndarray:
        return self.density.bandwidth

    def is_outlier(self, coords: np.ndarray) -> np.ndarray:
        """True where the reference density at ``coords`` is below the threshold"""
        return self.density.evaluate(coords) < self.threshold

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "threshold": self.threshold,
            "bandwidth": self.bandwidth.tolist(),
            "extreme_fraction": self.extreme_fraction,
            "p_rate": self.p_rate,
            "trials": self.trials,
            "seed": self.seed,
        }


def calibrate_threshold(
    reference_coords: np.ndarray,
    p_rate: float = 0.001,
    trials: int = 500,
    seed: int = 0,
    n_jobs: int = 1,
) -> ThresholdModel:
    """Derive the outlier density threshold from reference coordinates

    Args:
        reference_coords: m x k reference points
        p_rate: Target false positive rate in (0, 1)
        trials: Number of Monte-Carlo batches
        seed: Base seed, trial i uses (seed, i)
        n_jobs: Threads used to run the trials

    Returns:
        ThresholdModel with a strictly positive threshold

    Raises:
        NumericInstability: Singular bandwidth, non-finite minima or a degenerate calibration
    """
    if not 0 < p_rate < 1:
        raise ValueError(f"p_rate must be in (0, 1), got {p_rate}")
    if trials < 1:
        raise ValueError(f"trials must be >= 1, got {trials}")

    points = np.asarray(reference_coords, dtype=float)
    if points.ndim != 2:
        raise ValueError("Reference coordinates must be a 2D array")

    m = points.shape[0]
    bandwidth = scv_bandwidth(points)
    density = KernelDensity(points=points, bandwidth=bandwidth)

    simulate = partial(_batch_minimum, density, seed)
    if n_jobs == 1:
        minima = np.array([simulate(trial) for trial in range(trials)])
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            minima = np.array(list(pool.map(simulate, range(trials))))

    if not np.isfinite(minima).all():
        raise NumericInstability("Density evaluation produced non-finite minima")

    threshold, extreme_fraction = extreme_value_threshold(minima, m, p_rate)

    logger.info(
        "Threshold calibrated",
        threshold=threshold,
        n_reference=m,
        trials=trials,
        extreme_fraction=round(extreme_fraction, 3),
        p_rate=p_rate,
    )

    return ThresholdModel(
        threshold=threshold,
        density=density,
        extreme_fraction=extreme_fraction,
        p_rate=p_rate,
        trials=trials,
        seed=seed,
    )


def _batch_minimum(density: KernelDensity, seed: int, trial: int) -> float:
    """Smallest density among m bootstrapped and perturbed reference points"""
    rng = np.random.default_rng([seed, trial])
    m, k = density.points.shape
    resampled = density.points[rng.integers(0, m, size=m)]
    # The bandwidth doubles as the covariance of the sampling noise
    perturbed = resampled + rng.multivariate_normal(np.zeros(k), density.bandwidth, size=m)
    return float(density.evaluate(perturbed).min())


def extreme_value_threshold(minima: np.ndarray, m: int, p_rate: float) -> tuple[float, float]:
    """Convert simulated batch minima into a density threshold

    Returns:
        (threshold, extreme_fraction)

    Raises:
        NumericInstability: If no minimum is below 1 / (2 pi)
    """
    minima = np.asarray(minima, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        psi = np.where(minima < 1 / (2 * np.pi), np.sqrt(-2 * np.log(minima) - 2 * LOG_2PI), 0.0)

    extreme_fraction = np.count_nonzero(psi) / len(psi)
    if extreme_fraction == 0:
        raise NumericInstability("All simulated minima collapsed to zero after the psi transform")

    y = -np.log(-np.log(1 - p_rate * extreme_fraction))
    log_m = np.log(m)
    cm = np.sqrt(2 * log_m) - (np.log(log_m) + np.log(4 * np.pi)) / (2 * np.sqrt(2 * log_m))
    dm = 1 / np.sqrt(2 * log_m)
    t = cm + y * dm

    threshold = float(np.exp(-(t**2 + 2 * LOG_2PI) / 2))
    if not (np.isfinite(threshold) and threshold > 0):
        raise NumericInstability(f"Degenerate threshold {threshold}")

    return threshold, float(extreme_fraction)
