"""
Tests for generator models (AnomalyType, InjectedAnomaly, GeneratorConfig).
"""

import pytest

from src.generator.config import CLEAN_CONFIG, DEV_CONFIG, DRIFT_CONFIG, PAPER_CONFIG
from src.generator.models import AnomalyType, GeneratorConfig, InjectedAnomaly


class TestAnomalyType:
    """Tests for AnomalyType enum."""

    def test_all_anomaly_types_exist(self):
        """Verify all expected anomaly types are defined."""
        assert {anomaly.value for anomaly in AnomalyType} == {"scale", "shift", "variance"}


class TestInjectedAnomaly:
    """Tests for InjectedAnomaly."""

    @pytest.fixture
    def anomaly(self):
        return InjectedAnomaly(AnomalyType.SCALE, 100, 200, 5, 8, magnitude=2.0)

    def test_series(self, anomaly):
        assert list(anomaly.series) == [5, 6, 7]

    @pytest.mark.parametrize(
        "start,end,expected",
        [(0, 100, False), (0, 101, True), (150, 160, True), (199, 300, True), (200, 300, False)],
    )
    def test_covers(self, anomaly, start, end, expected):
        assert anomaly.covers(start, end) is expected


class TestGeneratorConfig:
    """Tests for GeneratorConfig dataclass."""

    def test_default_config(self):
        config = GeneratorConfig()

        assert config.num_series == 100
        assert config.train_length == 250
        assert config.anomalies == []
        assert config.drift_per_step == 0.0

    def test_anomaly_outside_stream(self):
        with pytest.raises(ValueError, match="outside the stream"):
            GeneratorConfig(
                stream_length=100,
                anomalies=[InjectedAnomaly(AnomalyType.SHIFT, 50, 150, 0, 2, magnitude=1.0)],
            )

    def test_anomaly_on_missing_series(self):
        with pytest.raises(ValueError, match="do not exist"):
            GeneratorConfig(
                num_series=10,
                anomalies=[InjectedAnomaly(AnomalyType.SHIFT, 0, 50, 8, 12, magnitude=1.0)],
            )


class TestPredefinedConfigs:
    """Tests for the predefined scenarios."""

    def test_paper_config(self):
        assert PAPER_CONFIG.num_series == 100
        assert PAPER_CONFIG.stream_length == 15000
        assert [(a.start, a.end) for a in PAPER_CONFIG.anomalies] == [(360, 1060), (2550, 3550)]
        assert all(list(a.series) == [20, 21, 22, 23, 24] for a in PAPER_CONFIG.anomalies)

    def test_drift_config_drifts(self):
        assert DRIFT_CONFIG.drift_per_step > 0

    def test_clean_config_has_no_anomalies(self):
        assert CLEAN_CONFIG.anomalies == []

    def test_dev_config_is_small(self):
        assert DEV_CONFIG.stream_length <= 1000
