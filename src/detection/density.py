"""
Multivariate Gaussian kernel density estimation with a full bandwidth matrix.

The bandwidth is selected by smoothed cross-validation (SCV): the criterion
is minimised over symmetric positive definite matrices, parametrised by a
Cholesky factor with a log diagonal. A normal-reference pilot bandwidth
drives the smoothing and the normal-scale bandwidth is the starting point,
so the selected matrix shrinks as the sample grows.
"""

from dataclasses import dataclass

import numpy as np
import structlog
from scipy.linalg import solve_triangular
from scipy.optimize import minimize

from src.core.errors import NumericInstability

logger = structlog.get_logger(__name__)

LOG_2PI = np.log(2 * np.pi)

# Kernel evaluations held in memory at once
PAIR_BLOCK = 2**20

# Smallest accepted ratio between the smallest and largest covariance eigenvalue
MIN_EIGEN_RATIO = 1e-10


def _cholesky(matrix: np.ndarray) -> np.ndarray:
    try:
        chol = np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError as e:
        raise NumericInstability("Matrix is not positive definite") from e
    if not np.isfinite(chol).all():
        raise NumericInstability("Matrix has non-finite entries")
    return chol


def _check_conditioned(covariance: np.ndarray) -> None:
    eigenvalues = np.linalg.eigvalsh(covariance)
    if not np.isfinite(eigenvalues).all() or eigenvalues[0] <= MIN_EIGEN_RATIO * eigenvalues[-1]:
        raise NumericInstability("Sample covariance is singular")


def gaussian_kernel(diffs: np.ndarray, covariance: np.ndarray) -> np.ndarray:
    """Density of N(0, covariance) at each row of ``diffs``"""
    chol = _cholesky(covariance)
    return _gaussian_kernel_chol(diffs, chol)


def _gaussian_kernel_chol(diffs: np.ndarray, chol: np.ndarray) -> np.ndarray:
    d = chol.shape[0]
    z = solve_triangular(chol, diffs.T, lower=True)
    log_norm = 0.5 * d * LOG_2PI + np.sum(np.log(np.diag(chol)))
    return np.exp(-0.5 * np.sum(z**2, axis=0) - log_norm)


def _row_blocks(n_rows: int, n_cols: int):
    """Row slices whose blocks against ``n_cols`` points stay within PAIR_BLOCK"""
    step = max(1, PAIR_BLOCK // max(n_cols, 1))
    for start in range(0, n_rows, step):
        yield slice(start, min(start + step, n_rows))


def _kernel_block(rows: np.ndarray, points: np.ndarray, chol: np.ndarray) -> np.ndarray:
    diffs = (rows[:, None, :] - points[None, :, :]).reshape(-1, points.shape[1])
    return _gaussian_kernel_chol(diffs, chol).reshape(len(rows), len(points))


def kernel_pair_sum(points: np.ndarray, covariance: np.ndarray) -> float:
    """Sum of the N(0, covariance) density over all ordered pairs X_i - X_j, i == j included"""
    chol = _cholesky(covariance)
    total = 0.0
    for rows in _row_blocks(len(points), len(points)):
        total += float(_kernel_block(points[rows], points, chol).sum())
    return total


def kernel_quadratic_forms(
    points: np.ndarray, covariance: np.ndarray, weights: np.ndarray
) -> np.ndarray:
    """w' K w for each column w of ``weights``, K the Gram matrix of the kernel over ``points``

    The Gram matrix is only ever held one block of rows at a time.
    """
    weights = np.asarray(weights, dtype=float)
    if weights.ndim == 1:
        weights = weights[:, None]
    chol = _cholesky(covariance)
    forms = np.zeros(weights.shape[1])
    for rows in _row_blocks(len(points), len(points)):
        block = _kernel_block(points[rows], points, chol)
        forms += np.einsum("ij,ij->j", weights[rows], block @ weights)
    return forms


@dataclass(frozen=True, eq=False)
class KernelDensity:
    """Gaussian KDE over a fixed point set"""

    points: np.ndarray  # m x k
    bandwidth: np.ndarray  # k x k

    def __post_init__(self):
        points = np.asarray(self.points, dtype=float)
        bandwidth = np.atleast_2d(np.asarray(self.bandwidth, dtype=float))
        if points.ndim != 2 or points.shape[0] == 0:
            raise ValueError("Density points must be a non-empty 2D array")
        if bandwidth.shape != (points.shape[1], points.shape[1]):
            raise ValueError(
                f"Bandwidth shape {bandwidth.shape} does not match dimension {points.shape[1]}"
            )
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "bandwidth", bandwidth)
        object.__setattr__(self, "_chol", _cholesky(bandwidth))

    @property
    def dimension(self) -> int:
        return self.points.shape[1]

    def evaluate(self, eval_points: np.ndarray) -> np.ndarray:
        """Density estimate at each row of ``eval_points`` (NaN rows give NaN)"""
        eval_points = np.atleast_2d(np.asarray(eval_points, dtype=float))
        if eval_points.shape[1] != self.dimension:
            raise ValueError(
                f"Evaluation points have dimension {eval_points.shape[1]}, "
                f"expected {self.dimension}"
            )

        densities = np.empty(eval_points.shape[0])
        for rows in _row_blocks(eval_points.shape[0], self.points.shape[0]):
            densities[rows] = _kernel_block(eval_points[rows], self.points, self._chol).mean(axis=1)
        return densities

    def grid(self, gridsize: int = 151, expand: float = 0.25):
        """Evaluate a 2-D density surface on a regular grid

        Returns:
            (xs, ys, surface) with surface[i, j] the density at (xs[j], ys[i])
        """
        if self.dimension != 2:
            raise ValueError("Density grids are only available in two dimensions")

        low = self.points.min(axis=0)
        high = self.points.max(axis=0)
        margin = expand * (high - low) + 3 * np.sqrt(np.diag(self.bandwidth))
        xs = np.linspace(low[0] - margin[0], high[0] + margin[0], gridsize)
        ys = np.linspace(low[1] - margin[1], high[1] + margin[1], gridsize)
        mesh_x, mesh_y = np.meshgrid(xs, ys)
        surface = self.evaluate(np.column_stack([mesh_x.ravel(), mesh_y.ravel()]))
        return xs, ys, surface.reshape(gridsize, gridsize)


def normal_scale_bandwidth(points: np.ndarray) -> np.ndarray:
    """Normal-reference bandwidth matrix (n^(-2/(d+4)) times the sample covariance)"""
    n, d = points.shape
    covariance = np.atleast_2d(np.cov(points, rowvar=False))
    _check_conditioned(covariance)
    return (4 / (n * (d + 2))) ** (2 / (d + 4)) * covariance


def _theta_to_chol(theta: np.ndarray, d: int) -> np.ndarray:
    chol = np.zeros((d, d))
    chol[np.tril_indices(d)] = theta
    diagonal = np.arange(d)
    chol[diagonal, diagonal] = np.exp(chol[diagonal, diagonal])
    return chol


def _chol_to_theta(chol: np.ndarray) -> np.ndarray:
    d = chol.shape[0]
    chol = chol.copy()
    diagonal = np.arange(d)
    chol[diagonal, diagonal] = np.log(chol[diagonal, diagonal])
    return chol[np.tril_indices(d)]


def scv_bandwidth(points: np.ndarray) -> np.ndarray:
    """Smoothed cross-validation bandwidth matrix

    SCV(H) = n^-1 (4 pi)^(-d/2) |H|^(-1/2)
             + n^-2 sum_ij [phi_(2H+2G) - 2 phi_(H+2G) + phi_(2G)](X_i - X_j)

    The last term does not depend on H and is dropped from the objective.

    Raises:
        NumericInstability: If the sample covariance is singular or too few points
    """
    points = np.asarray(points, dtype=float)
    n, d = points.shape
    if n < d + 2:
        raise NumericInstability(f"Need at least {d + 2} points for bandwidth selection, got {n}")
    if not np.isfinite(points).all():
        raise NumericInstability("Non-finite points in bandwidth selection")

    sample_cov = np.atleast_2d(np.cov(points, rowvar=False))
    _check_conditioned(sample_cov)
    pilot = (4 / (n * (d + 4))) ** (2 / (d + 6)) * sample_cov

    roughness = (4 * np.pi) ** (-d / 2)

    def objective(theta: np.ndarray) -> float:
        chol = _theta_to_chol(theta, d)
        h = chol @ chol.T
        try:
            pairs = kernel_pair_sum(points, 2 * h + 2 * pilot) - 2 * kernel_pair_sum(
                points, h + 2 * pilot
            )
        except NumericInstability:
            return np.inf
        det_sqrt = np.prod(np.diag(chol))
        return roughness / (n * det_sqrt) + pairs / n**2

    start = normal_scale_bandwidth(points)
    theta0 = _chol_to_theta(_cholesky(start))
    result = minimize(objective, theta0, method="Nelder-Mead")

    theta = result.x if np.isfinite(result.fun) else theta0
    chol = _theta_to_chol(theta, d)
    bandwidth = chol @ chol.T
    _cholesky(bandwidth)

    logger.debug(
        "SCV bandwidth selected",
        n_points=n,
        dimension=d,
        converged=bool(result.success),
        iterations=int(result.nit),
        det=float(np.linalg.det(bandwidth)),
    )

    return bandwidth
