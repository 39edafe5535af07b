"""
Projection model: a fixed linear map from feature space to a k-dimensional
evaluation space.

The model is fitted once on a training feature matrix (classical or robust
location/spread and covariance) and then only applied. Windows are always
projected with the stored center, scale and rotation so that every window is
compared in the same coordinate frame.
"""

from dataclasses import dataclass, replace
from typing import Any

import numpy as np
import structlog
from scipy.stats import median_abs_deviation
from sklearn.covariance import MinCovDet

from src.core.errors import InputError, NumericInstability
from src.features.base import FeatureMatrix

from .density import MIN_EIGEN_RATIO

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, eq=False)
class ProjectionModel:
    """Center, scale and rotation of the coordinate frame plus its reference points"""

    center: np.ndarray  # D
    scale: np.ndarray  # D
    rotation: np.ndarray  # D x k
    reference_coords: np.ndarray  # m x k
    robust: bool = True
    feature_names: tuple[str, ...] = ()

    @property
    def k(self) -> int:
        return self.rotation.shape[1]

    @property
    def n_reference(self) -> int:
        return self.reference_coords.shape[0]

    def with_reference(self, coords: np.ndarray) -> "ProjectionModel":
        """Same transform, new reference set"""
        coords = np.array(coords, dtype=float)
        if coords.ndim != 2 or coords.shape[1] != self.k:
            raise ValueError(f"Reference coordinates must have shape (m, {self.k})")
        return replace(self, reference_coords=coords)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "center": self.center.tolist(),
            "scale": self.scale.tolist(),
            "rotation": self.rotation.tolist(),
            "reference_coords": self.reference_coords.tolist(),
            "robust": self.robust,
            "feature_names": list(self.feature_names),
        }


def fit_projection(
    features: FeatureMatrix, k: int = 2, robust: bool = True, seed: int = 0
) -> ProjectionModel:
    """Fit the coordinate frame on a training feature matrix

    Args:
        features: Training features, unusable rows are ignored
        k: Number of retained directions
        robust: Use median/MAD and a Minimum Covariance Determinant estimate
        seed: Random state of the robust covariance estimator

    Returns:
        ProjectionModel whose reference_coords are the projected usable rows

    Raises:
        InputError: If there are not more usable series than features
        NumericInstability: If a feature has no spread or the covariance is singular
    """
    usable = features.usable
    n_usable = int(usable.sum())
    n_features = features.n_features

    if n_usable == 0:
        raise InputError("No usable series to fit the projection")
    if k > n_features:
        raise InputError(f"Cannot keep {k} directions from {n_features} features")
    if n_usable <= n_features:
        raise InputError(
            f"Need more usable series than features for covariance estimation: "
            f"{n_usable} <= {n_features}"
        )

    x = features.values[usable]

    if robust:
        center = np.median(x, axis=0)
        scale = median_abs_deviation(x, axis=0, scale="normal")
    else:
        center = x.mean(axis=0)
        scale = x.std(axis=0, ddof=1)

    flat = ~np.isfinite(scale) | (scale <= 0)
    if flat.any():
        names = [features.names[i] for i in np.flatnonzero(flat)]
        raise NumericInstability(f"Features without spread: {names}")

    standardized = (x - center) / scale

    if robust:
        try:
            covariance = MinCovDet(random_state=seed).fit(standardized).covariance_
        except (ValueError, np.linalg.LinAlgError) as e:
            raise NumericInstability(f"Robust covariance estimation failed: {e}") from e
    else:
        covariance = np.cov(standardized, rowvar=False)

    eigenvalues, eigenvectors = np.linalg.eigh(covariance)
    if not np.isfinite(eigenvalues).all() or eigenvalues[0] <= MIN_EIGEN_RATIO * eigenvalues[-1]:
        raise NumericInstability(
            "Covariance matrix of the standardized features is singular",
        )

    order = np.argsort(eigenvalues)[::-1][:k]
    rotation = eigenvectors[:, order]

    # Largest absolute loading of each direction is positive
    pivots = np.argmax(np.abs(rotation), axis=0)
    rotation = rotation * np.sign(rotation[pivots, np.arange(k)])

    model = ProjectionModel(
        center=center,
        scale=scale,
        rotation=rotation,
        reference_coords=np.empty((0, k)),
        robust=robust,
        feature_names=features.names,
    )
    model = model.with_reference(project(features, model)[usable])

    logger.info(
        "Projection fitted",
        robust=robust,
        k=k,
        n_reference=model.n_reference,
        n_features=n_features,
        explained_variance=round(float(eigenvalues[order].sum() / eigenvalues.sum()), 3),
    )

    return model


def project(features: FeatureMatrix, model: ProjectionModel) -> np.ndarray:
    """Map features into the model's coordinate frame

    Rows that are not usable come back as NaN.
    """
    if features.n_features != len(model.center):
        raise InputError(
            f"Feature dimension {features.n_features} does not match the model "
            f"({len(model.center)})"
        )

    coords = ((features.values - model.center) / model.scale) @ model.rotation
    coords[~features.usable] = np.nan
    return coords
