"""
Tests for StreamGenerator and the generator CLI.
"""

import numpy as np
import pandas as pd

from src.generator.generate import main
from src.generator.generator import StreamGenerator
from src.generator.models import AnomalyType, GeneratorConfig, InjectedAnomaly


class TestStreamGenerator:
    """Tests for StreamGenerator class."""

    def test_shapes(self, small_config, small_generator):
        assert small_generator.generate_training().shape == (
            small_config.train_length,
            small_config.num_series,
        )
        assert small_generator.generate_stream().shape == (
            small_config.stream_length,
            small_config.num_series,
        )

    def test_deterministic(self, small_config):
        first = StreamGenerator(small_config)
        second = StreamGenerator(small_config)
        np.testing.assert_array_equal(first.generate_stream(), second.generate_stream())
        np.testing.assert_array_equal(first.generate_training(), second.generate_training())

    def test_seed_changes_data(self, small_config):
        other = GeneratorConfig(num_series=60, train_length=100, stream_length=500, seed=8)
        assert not np.array_equal(
            StreamGenerator(small_config).generate_training(),
            StreamGenerator(other).generate_training(),
        )

    def test_training_is_centred_on_level(self, small_config, train_data):
        assert abs(train_data.mean() - small_config.level) < 0.5

    def test_scale_anomaly_applied(self, stream_data):
        """Scaled series roughly double inside the anomaly rows only."""
        inside = stream_data[200:300, 10:14].mean()
        before = stream_data[:200, 10:14].mean()
        assert 1.8 < inside / before < 2.2
        assert abs(stream_data[300:, 10:14].mean() - before) < 0.5

    def test_shift_anomaly_applied(self):
        config = GeneratorConfig(
            num_series=4,
            train_length=50,
            stream_length=200,
            anomalies=[InjectedAnomaly(AnomalyType.SHIFT, 100, 200, 0, 1, magnitude=5.0)],
        )
        stream = StreamGenerator(config).generate_stream()
        assert stream[100:, 0].mean() - stream[:100, 0].mean() > 4

    def test_variance_anomaly_applied(self):
        config = GeneratorConfig(
            num_series=4,
            train_length=50,
            stream_length=400,
            anomalies=[InjectedAnomaly(AnomalyType.VARIANCE, 200, 400, 0, 1, magnitude=4.0)],
        )
        stream = StreamGenerator(config).generate_stream()
        assert stream[200:, 0].std() > 2 * stream[:200, 0].std()

    def test_drift(self):
        config = GeneratorConfig(num_series=5, stream_length=1000, drift_per_step=0.01)
        stream = StreamGenerator(config).generate_stream()
        assert stream[-100:].mean() - stream[:100].mean() > 8

    def test_anomalous_series(self, small_generator):
        assert small_generator.anomalous_series(200, 300) == {10, 11, 12, 13}
        assert small_generator.anomalous_series(250, 260) == {10, 11, 12, 13}
        assert small_generator.anomalous_series(0, 200) == set()


class TestGenerateCLI:
    """Tests for the generate entry point."""

    def test_writes_csvs(self, tmp_path):
        code = main(
            ["--config", "dev", "--stream-length", "300", "--output-dir", str(tmp_path)]
        )

        assert code == 0
        train = pd.read_csv(tmp_path / "train.csv")
        stream = pd.read_csv(tmp_path / "stream.csv")
        assert train.shape == (100, 60)
        assert stream.shape == (300, 60)
        assert list(stream.columns[:2]) == ["series_1", "series_2"]

    def test_invalid_override_fails(self, tmp_path):
        """Anomalies must fit in an overridden stream length."""
        code = main(["--config", "dev", "--stream-length", "150", "--output-dir", str(tmp_path)])
        assert code == 1
