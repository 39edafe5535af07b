"""
Two-sample test for concept drift between reference and window coordinates.

The statistic is the integrated squared difference between the two Gaussian
kernel density estimates, both using the normal-scale bandwidth H of the
pooled sample. With Gaussian kernels it has the closed form w' K w where
K[i, j] = phi_2H(Z_i - Z_j) and w holds 1/n1 for the first sample and -1/n2
for the second. The p-value comes from a seeded permutation of the labels.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import structlog

from src.core.errors import DriftTestFailure, NumericInstability

from .density import kernel_quadratic_forms, normal_scale_bandwidth

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DriftTestResult:
    """Outcome of a two-sample drift test"""

    statistic: float
    p_value: float
    n_reference: int
    n_window: int
    permutations: int


def kde_two_sample_test(
    reference: np.ndarray,
    window: np.ndarray,
    permutations: int = 199,
    seed: int | Sequence[int] = 0,
    min_points: int = 10,
) -> DriftTestResult:
    """Test whether two point sets come from the same distribution

    Args:
        reference: n1 x k reference coordinates
        window: n2 x k window coordinates
        permutations: Number of label permutations
        seed: Seed of the permutation generator
        min_points: Minimum number of finite points required in each sample

    Returns:
        DriftTestResult, small p-values indicate different distributions

    Raises:
        DriftTestFailure: Too few points or a singular pooled covariance
    """
    reference = _finite_rows(reference)
    window = _finite_rows(window)
    n1, n2 = len(reference), len(window)

    if n1 < min_points or n2 < min_points:
        raise DriftTestFailure(
            f"Too few points for the drift test: reference={n1}, window={n2}, "
            f"required={min_points}"
        )
    if reference.shape[1] != window.shape[1]:
        raise DriftTestFailure("Reference and window coordinates differ in dimension")

    pooled = np.vstack([reference, window])
    n = len(pooled)

    weights = np.concatenate([np.full(n1, 1 / n1), np.full(n2, -1 / n2)])
    rng = np.random.default_rng(seed)
    # Column 0 is the observed labelling, the rest are permutations
    labellings = np.column_stack(
        [weights] + [weights[rng.permutation(n)] for _ in range(permutations)]
    )

    try:
        bandwidth = normal_scale_bandwidth(pooled)
        forms = kernel_quadratic_forms(pooled, 2 * bandwidth, labellings)
    except NumericInstability as e:
        raise DriftTestFailure(f"Drift test could not be computed: {e}") from e

    statistic = float(forms[0])
    exceed = int(np.count_nonzero(forms[1:] >= statistic))
    p_value = (exceed + 1) / (permutations + 1)

    logger.debug(
        "Drift test computed",
        statistic=statistic,
        p_value=p_value,
        n_reference=n1,
        n_window=n2,
    )

    return DriftTestResult(
        statistic=statistic,
        p_value=p_value,
        n_reference=n1,
        n_window=n2,
        permutations=permutations,
    )


def _finite_rows(points: np.ndarray) -> np.ndarray:
    points = np.atleast_2d(np.asarray(points, dtype=float))
    return points[np.isfinite(points).all(axis=1)]
