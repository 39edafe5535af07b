"""
Streaming evaluator.

Orchestrates the pipeline over a live stream:

    INITIALIZING -> STREAMING -> [ADAPTING] -> STREAMING -> ... -> DONE

Initialization fits the projection and calibrates the threshold on the
training collection. Each full window of the stream is then featurized,
projected with the current model and tested against the threshold. With
concept drift enabled, a two-sample test decides whether the window replaces
the reference set.

Window evaluation is a reducer (ModelState, Window) -> (ModelState', report):
windows run strictly in order and the model state is swapped as a whole.
"""

import threading
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
import structlog

from src.core.errors import (
    DriftTestFailure,
    InputError,
    NumericInstability,
    OddStreamError,
)
from src.features import FeatureExtractor, get_extractor

from .drift import kde_two_sample_test
from .models import (
    DetectionResult,
    DetectorConfig,
    DriftDiagnostic,
    ModelState,
    OutlierReport,
    TimeSeriesCollection,
    Window,
)
from .projection import fit_projection, project
from .threshold import calibrate_threshold

logger = structlog.get_logger(__name__)


class EvaluatorState(Enum):
    """Lifecycle of a streaming evaluator"""

    INITIALIZING = "initializing"
    STREAMING = "streaming"
    ADAPTING = "adapting"
    DONE = "done"


@dataclass(frozen=True, eq=False)
class WindowOutcome:
    """Model state after a window together with what the window produced"""

    state: ModelState
    report: OutlierReport
    diagnostic: Optional[DriftDiagnostic]


def sliding_windows(stream_length: int, window_length: int, window_skip: int) -> list[Window]:
    """Full windows [start, start + window_length) with starts 0, skip, 2 * skip, ...

    A trailing partial window is dropped.
    """
    if window_length < 1 or window_skip < 1:
        raise InputError("Window length and skip must be positive integers")
    if window_length > stream_length:
        raise InputError(
            f"Window length {window_length} exceeds stream length {stream_length}"
        )

    starts = range(0, stream_length - window_length + 1, window_skip)
    return [
        Window(index=i, start=start, end=start + window_length) for i, start in enumerate(starts)
    ]


def _as_collection(data) -> TimeSeriesCollection:
    if isinstance(data, TimeSeriesCollection):
        return data
    return TimeSeriesCollection.from_array(data)


class StreamingEvaluator:
    """Sliding-window outlier detection over one stream"""

    def __init__(
        self, config: DetectorConfig | None = None, extractor: FeatureExtractor | None = None
    ):
        self.config = config or DetectorConfig()
        self.config.validate()

        self.extractor = extractor or get_extractor(
            self.config.extractor_name, self.config.extractor_config
        )

        self.state = EvaluatorState.INITIALIZING
        self.model_state: Optional[ModelState] = None
        self.n_series: Optional[int] = None
        self.window_length: Optional[int] = None
        self.window_skip: Optional[int] = None
        self._cancel_event = threading.Event()

        self.stats = {
            "windows_evaluated": 0,
            "outliers_flagged": 0,
            "unreliable_windows": 0,
            "adaptations": 0,
            "drift_test_failures": 0,
        }

        logger.info(
            "Evaluator initialized",
            extractor=self.extractor.name,
            p_rate=self.config.p_rate,
            trials=self.config.trials,
            robust=self.config.robust,
            k=self.config.k,
            concept_drift=self.config.concept_drift,
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop before the next window, emitted reports stay valid"""
        self._cancel_event.set()

    def initialize(self, train) -> ModelState:
        """Fit the projection and calibrate the threshold on training data

        Raises:
            InputError: Invalid training data
            NumericInstability: Singular covariance or degenerate calibration
        """
        train = _as_collection(train)
        self.state = EvaluatorState.INITIALIZING

        if train.excluded_series.all():
            raise InputError("All training series are missing")

        self.n_series = train.n_series
        self.window_length = self.config.window_length or train.length
        self.window_skip = self.config.window_skip or self.window_length

        try:
            features = self.extractor.extract(train.values, self.config.feature_width)
            projection = fit_projection(
                features, k=self.config.k, robust=self.config.robust, seed=self.config.seed
            )
            threshold = calibrate_threshold(
                projection.reference_coords,
                p_rate=self.config.p_rate,
                trials=self.config.trials,
                seed=self.config.seed,
                n_jobs=self.config.n_jobs,
            )
        except OddStreamError as e:
            logger.error("Initialization failed", error=str(e), error_type=type(e).__name__)
            raise

        self.model_state = ModelState(projection=projection, threshold=threshold)
        self.state = EvaluatorState.STREAMING

        logger.info(
            "Model state initialized",
            n_series=train.n_series,
            train_length=train.length,
            n_reference=projection.n_reference,
            threshold=threshold.threshold,
            window_length=self.window_length,
            window_skip=self.window_skip,
        )

        return self.model_state

    def windows(self, stream_length: int) -> list[Window]:
        """Full windows of a stream of the given length"""
        if self.window_length is None:
            raise RuntimeError("Evaluator is not initialized")
        return sliding_windows(stream_length, self.window_length, self.window_skip)

    def step(self, model_state: ModelState, window: Window, data: np.ndarray) -> WindowOutcome:
        """Evaluate one window against ``model_state``

        Never raises for numeric problems: a failed evaluation yields an
        unreliable report and the unchanged model state.
        """
        report, coords, flagged = self._evaluate(model_state, window, data)

        if not self.config.concept_drift or report.unreliable:
            return WindowOutcome(state=model_state, report=report, diagnostic=None)

        self.state = EvaluatorState.ADAPTING
        try:
            new_state, diagnostic = self._adapt(model_state, window, coords, flagged)
        finally:
            self.state = EvaluatorState.STREAMING

        return WindowOutcome(state=new_state, report=report, diagnostic=diagnostic)

    def stream(self, test_stream) -> Iterator[WindowOutcome]:
        """Evaluate every full window in order, threading the model state"""
        if self.model_state is None:
            raise RuntimeError("Evaluator is not initialized, call initialize() first")

        test_stream = _as_collection(test_stream)
        self._check_stream(test_stream)
        windows = self.windows(test_stream.length)

        for window in windows:
            if self.cancelled:
                logger.info(
                    "Evaluation cancelled",
                    windows_evaluated=self.stats["windows_evaluated"],
                    windows_remaining=len(windows) - window.index,
                )
                break

            outcome = self.step(self.model_state, window, test_stream.window(window.start, window.end))
            self.model_state = outcome.state
            self._record(outcome)
            yield outcome

        self.state = EvaluatorState.DONE

    def run(self, train, test_stream) -> DetectionResult:
        """Initialize on ``train`` and evaluate the whole ``test_stream``"""
        train = _as_collection(train)
        test_stream = _as_collection(test_stream)

        # Input problems surface before any fitting
        if train.n_series != test_stream.n_series:
            raise InputError(
                f"Training data has {train.n_series} series, stream has {test_stream.n_series}"
            )
        window_length = self.config.window_length or train.length
        if window_length > test_stream.length:
            raise InputError(
                f"Window length {window_length} exceeds stream length {test_stream.length}"
            )

        initial_state = self.initialize(train)

        reports = []
        diagnostics = []
        for outcome in self.stream(test_stream):
            reports.append(outcome.report)
            diagnostics.append(outcome.diagnostic)

        logger.info(
            "Stream evaluated",
            windows=len(reports),
            cancelled=self.cancelled,
            **self.stats,
        )

        return DetectionResult(
            reports=reports,
            diagnostics=diagnostics,
            initial_state=initial_state,
            final_state=self.model_state,
            cancelled=self.cancelled,
        )

    def _check_stream(self, test_stream: TimeSeriesCollection) -> None:
        if test_stream.n_series != self.n_series:
            raise InputError(
                f"Training data has {self.n_series} series, stream has {test_stream.n_series}"
            )

    def _evaluate(self, model_state: ModelState, window: Window, data: np.ndarray):
        """Report for one window plus its coordinates and outlier mask"""
        try:
            features = self.extractor.extract(data, self.config.feature_width)
            coords = project(features, model_state.projection)
            usable = features.usable
            densities = model_state.threshold.density.evaluate(coords[usable])
            if not np.isfinite(densities).all():
                raise NumericInstability("Density evaluation produced non-finite values")
        except (OddStreamError, ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
            logger.warning(
                "Window evaluation failed, keeping previous model",
                window_start=window.start,
                window_end=window.end,
                error=str(e),
            )
            excluded = tuple(int(i) for i in np.flatnonzero(np.isnan(data).all(axis=0)))
            report = OutlierReport(
                window_index=window.index,
                window_start=window.start,
                window_end=window.end,
                outlier_series_indices=(),
                excluded_series=excluded,
                unreliable=True,
                reason=str(e),
            )
            return report, None, None

        flagged = densities < model_state.threshold.threshold
        outliers = tuple(int(i) for i in np.flatnonzero(usable)[flagged])

        report = OutlierReport(
            window_index=window.index,
            window_start=window.start,
            window_end=window.end,
            outlier_series_indices=outliers,
            excluded_series=tuple(int(i) for i in np.flatnonzero(~usable)),
        )

        logger.info(
            "Window evaluated",
            window_start=window.start,
            window_end=window.end,
            outliers=list(outliers) if outliers else None,
        )

        return report, coords[usable], flagged

    def _adapt(
        self, model_state: ModelState, window: Window, coords: np.ndarray, flagged: np.ndarray
    ) -> tuple[ModelState, Optional[DriftDiagnostic]]:
        """Replace the model state if the window's distribution has drifted"""
        n_outliers = int(flagged.sum())

        # A minority of outliers is left out; a majority means the reference is stale
        if 0 < n_outliers < self.config.majority_fraction * len(coords):
            points = coords[~flagged]
        else:
            points = coords

        try:
            result = kde_two_sample_test(
                model_state.projection.reference_coords,
                points,
                permutations=self.config.drift_permutations,
                seed=(self.config.seed, window.index),
                min_points=self.config.drift_min_points,
            )
        except DriftTestFailure as e:
            self.stats["drift_test_failures"] += 1
            logger.warning(
                "Drift test failed, adaptation skipped",
                window_start=window.start,
                window_end=window.end,
                error=str(e),
            )
            return model_state, None

        if result.p_value >= self.config.cd_alpha:
            logger.debug(
                "No drift detected",
                window_start=window.start,
                p_value=result.p_value,
            )
            return model_state, None

        try:
            threshold = calibrate_threshold(
                points,
                p_rate=self.config.p_rate,
                trials=self.config.trials,
                seed=self.config.seed,
                n_jobs=self.config.n_jobs,
            )
        except NumericInstability as e:
            logger.warning(
                "Recalibration failed, keeping previous model",
                window_start=window.start,
                window_end=window.end,
                error=str(e),
            )
            return model_state, None

        new_state = ModelState(
            projection=model_state.projection.with_reference(points),
            threshold=threshold,
        )
        diagnostic = DriftDiagnostic(
            drift_p_value=result.p_value,
            updated_threshold=threshold.threshold,
            n_tested=len(points),
        )

        logger.info(
            "Concept drift detected, model updated",
            window_start=window.start,
            window_end=window.end,
            p_value=result.p_value,
            threshold=threshold.threshold,
            n_reference=len(points),
        )

        return new_state, diagnostic

    def _record(self, outcome: WindowOutcome) -> None:
        self.stats["windows_evaluated"] += 1
        self.stats["outliers_flagged"] += len(outcome.report.outlier_series_indices)
        if outcome.report.unreliable:
            self.stats["unreliable_windows"] += 1
        if outcome.diagnostic is not None:
            self.stats["adaptations"] += 1
