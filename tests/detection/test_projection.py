"""
Tests for the projection model.
"""

import numpy as np
import pytest

from src.core.errors import InputError, NumericInstability
from src.detection.projection import fit_projection, project
from src.features.base import FeatureMatrix


def make_features(values, excluded=None):
    values = np.asarray(values, dtype=float)
    if excluded is None:
        excluded = np.zeros(values.shape[0], dtype=bool)
    names = tuple(f"f{i}" for i in range(values.shape[1]))
    return FeatureMatrix(values=values, names=names, excluded=excluded)


@pytest.fixture
def features(rng):
    """80 series with 5 correlated features."""
    base = rng.normal(size=(80, 5))
    base[:, 1] += 0.8 * base[:, 0]
    base[:, 3] += 0.5 * base[:, 2]
    return make_features(base)


class TestFitProjection:
    """Tests for fit_projection."""

    @pytest.mark.parametrize("robust", [True, False])
    def test_reference_round_trip(self, features, robust):
        """Projecting the training features reproduces the reference coordinates."""
        model = fit_projection(features, k=2, robust=robust)
        coords = project(features, model)

        assert model.reference_coords.shape == (80, 2)
        np.testing.assert_allclose(coords[features.usable], model.reference_coords)

    def test_deterministic(self, features):
        """Fitting twice with the same seed gives the same model."""
        first = fit_projection(features, seed=3)
        second = fit_projection(features, seed=3)

        np.testing.assert_array_equal(first.rotation, second.rotation)
        np.testing.assert_array_equal(first.reference_coords, second.reference_coords)

    def test_rotation_orthonormal(self, features):
        model = fit_projection(features, k=3, robust=False)
        np.testing.assert_allclose(model.rotation.T @ model.rotation, np.eye(3), atol=1e-10)

    def test_sign_convention(self, features):
        """The largest absolute loading of each direction is positive."""
        model = fit_projection(features, k=2)
        pivots = np.argmax(np.abs(model.rotation), axis=0)
        assert (model.rotation[pivots, [0, 1]] > 0).all()

    def test_classical_uses_mean_and_sd(self, features):
        model = fit_projection(features, robust=False)
        np.testing.assert_allclose(model.center, features.values.mean(axis=0))
        np.testing.assert_allclose(model.scale, features.values.std(axis=0, ddof=1))

    def test_excluded_rows_ignored(self, features):
        """Excluded series are not part of the reference set."""
        excluded = np.zeros(80, dtype=bool)
        excluded[:5] = True
        values = features.values.copy()
        values[:5] = np.nan
        model = fit_projection(make_features(values, excluded))

        assert model.n_reference == 75

    def test_too_few_series(self, rng):
        """Covariance estimation needs more series than features."""
        with pytest.raises(InputError):
            fit_projection(make_features(rng.normal(size=(5, 5))))

    def test_k_larger_than_features(self, features):
        with pytest.raises(InputError):
            fit_projection(features, k=6)

    def test_no_usable_rows(self):
        values = np.full((10, 3), np.nan)
        with pytest.raises(InputError):
            fit_projection(make_features(values, np.ones(10, dtype=bool)))

    def test_constant_feature(self, features):
        """A feature without spread cannot be standardized."""
        values = features.values.copy()
        values[:, 2] = 1.0
        with pytest.raises(NumericInstability, match="without spread"):
            fit_projection(make_features(values), robust=False)

    def test_collinear_features(self, features):
        """Duplicated features make the covariance singular."""
        values = features.values.copy()
        values[:, 4] = values[:, 0]
        with pytest.raises(NumericInstability, match="singular"):
            fit_projection(make_features(values), robust=False)


class TestProject:
    """Tests for project."""

    def test_unusable_rows_are_nan(self, features):
        model = fit_projection(features)
        values = features.values[:10].copy()
        values[2, 1] = np.nan
        coords = project(make_features(values), model)

        assert np.isnan(coords[2]).all()
        assert np.isfinite(np.delete(coords, 2, axis=0)).all()

    def test_dimension_mismatch(self, features, rng):
        model = fit_projection(features)
        with pytest.raises(InputError):
            project(make_features(rng.normal(size=(10, 4))), model)

    def test_with_reference_keeps_transform(self, features, rng):
        """Swapping the reference set keeps center, scale and rotation."""
        model = fit_projection(features)
        updated = model.with_reference(rng.normal(size=(30, 2)))

        assert updated.n_reference == 30
        assert updated.rotation is model.rotation
        assert model.n_reference == 80
