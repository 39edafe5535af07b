"""
Tests for the time-series measures extractor and the extractor registry.
"""

import numpy as np
import pytest

from src.features import get_extractor, list_extractors
from src.features.base import FeatureMatrix
from src.features.tsmeasures import (
    BASE_FEATURES,
    DISTRIBUTION_FEATURES,
    SEASONAL_FEATURES,
    TSMeasuresExtractor,
    _longest_run,
)


@pytest.fixture
def matrix(rng):
    """100 time steps x 8 series of noise around 10."""
    return 10 + rng.normal(size=(100, 8))


class TestRegistry:
    """Tests for the extractor factory."""

    def test_list_extractors(self):
        assert "tsmeasures" in list_extractors()

    def test_get_extractor(self):
        extractor = get_extractor("tsmeasures", {"period": 4})
        assert isinstance(extractor, TSMeasuresExtractor)
        assert extractor.get_config()["period"] == 4

    def test_unknown_extractor(self):
        with pytest.raises(ValueError, match="Unknown extractor"):
            get_extractor("nope")


class TestTSMeasuresExtractor:
    """Tests for TSMeasuresExtractor."""

    def test_shape_and_names(self, matrix):
        """One row per series, one column per feature."""
        features = TSMeasuresExtractor().extract(matrix, width=10)

        assert isinstance(features, FeatureMatrix)
        assert features.values.shape == (8, len(BASE_FEATURES) + len(DISTRIBUTION_FEATURES))
        assert features.names == BASE_FEATURES + DISTRIBUTION_FEATURES
        assert features.usable.all()

    def test_seasonal_features_added(self, matrix):
        """A seasonal period adds season, peak and trough."""
        extractor = TSMeasuresExtractor({"period": 4})
        features = extractor.extract(matrix, width=10)

        for name in SEASONAL_FEATURES:
            assert name in features.names
        assert features.n_features == len(BASE_FEATURES + SEASONAL_FEATURES + DISTRIBUTION_FEATURES)

    def test_basic_statistics(self, matrix):
        """Mean, variance and extremes match numpy."""
        features = TSMeasuresExtractor().extract(matrix, width=10)
        frame = features.to_frame()

        np.testing.assert_allclose(frame["mean"], matrix.mean(axis=0))
        np.testing.assert_allclose(frame["var"], matrix.var(axis=0, ddof=1))
        np.testing.assert_allclose(frame["min"], matrix.min(axis=0))
        np.testing.assert_allclose(frame["max"], matrix.max(axis=0))

    def test_all_missing_series_excluded(self, matrix):
        """An all-missing column is excluded instead of failing."""
        matrix[:, 3] = np.nan
        features = TSMeasuresExtractor().extract(matrix, width=10)

        assert features.excluded[3]
        assert np.isnan(features.values[3]).all()
        assert not features.usable[3]
        assert features.usable.sum() == 7

    def test_partially_missing_series(self, matrix):
        """Scattered missing values are skipped."""
        matrix[::7, 0] = np.nan
        features = TSMeasuresExtractor().extract(matrix, width=10)

        assert not features.excluded[0]
        assert np.isclose(features.values[0, 0], np.nanmean(matrix[:, 0]))

    def test_constant_series_are_scored(self, matrix):
        """A stuck sensor and a dead sensor get finite features and stay usable."""
        matrix[:, 2] = 10.0
        matrix[:, 5] = 0.0
        features = TSMeasuresExtractor().extract(matrix, width=10)

        assert np.isfinite(features.values).all()
        assert not features.excluded.any()
        assert features.usable.all()

    def test_undefined_ratios_are_zero(self, matrix):
        matrix[:, 2] = 10.0
        matrix[:, 5] = 0.0
        frame = TSMeasuresExtractor().extract(matrix, width=10).to_frame()

        for series in (2, 5):
            assert frame["highlowmu"][series] == 0
            assert frame["moment3"][series] == 0
            assert frame["burstiness"][series] == 0
            assert frame["var"][series] == 0

    def test_deterministic(self, matrix):
        """The same input gives the same features."""
        extractor = TSMeasuresExtractor()
        first = extractor.extract(matrix, width=10)
        second = extractor.extract(matrix, width=10)
        np.testing.assert_array_equal(first.values, second.values)

    def test_threaded_matches_sequential(self, matrix):
        """Threads do not change the result."""
        sequential = TSMeasuresExtractor().extract(matrix, width=10)
        threaded = TSMeasuresExtractor({"n_jobs": 3}).extract(matrix, width=10)
        np.testing.assert_array_equal(sequential.values, threaded.values)

    def test_level_shift_detected(self, rng):
        """A step in the level shows up in level_shift."""
        flat = rng.normal(size=200)
        stepped = flat.copy()
        stepped[100:] += 10
        features = TSMeasuresExtractor().extract(np.column_stack([flat, stepped]), width=10)
        frame = features.to_frame()

        assert frame["level_shift"][1] > 5 > frame["level_shift"][0]

    def test_linearity_sign(self):
        """An increasing series has positive linearity."""
        t = np.arange(100, dtype=float)
        features = TSMeasuresExtractor().extract(np.column_stack([t, -t]), width=10)
        frame = features.to_frame()

        assert frame["linearity"][0] > 0
        assert frame["linearity"][1] < 0

    def test_invalid_width(self, matrix):
        with pytest.raises(ValueError, match="Width"):
            TSMeasuresExtractor().extract(matrix, width=1)

    def test_invalid_period(self):
        with pytest.raises(ValueError, match="Period"):
            TSMeasuresExtractor({"period": 0})


class TestLongestRun:
    """Tests for the contiguous stretch helper."""

    def test_no_missing(self):
        x = np.arange(5.0)
        np.testing.assert_array_equal(_longest_run(x), x)

    def test_picks_longest(self):
        x = np.array([1.0, np.nan, 2.0, 3.0, 4.0, np.nan, 5.0])
        np.testing.assert_array_equal(_longest_run(x), [2.0, 3.0, 4.0])
