"""
Projection, density threshold, drift test and the streaming evaluator.
"""

from .density import KernelDensity, normal_scale_bandwidth, scv_bandwidth
from .drift import DriftTestResult, kde_two_sample_test
from .evaluator import EvaluatorState, StreamingEvaluator, WindowOutcome, sliding_windows
from .models import (
    DetectionResult,
    DetectorConfig,
    DriftDiagnostic,
    ModelState,
    OutlierReport,
    TimeSeriesCollection,
    Window,
)
from .parallel import StreamJob, run_streams
from .projection import ProjectionModel, fit_projection, project
from .threshold import ThresholdModel, calibrate_threshold, extreme_value_threshold

__all__ = [
    "DetectionResult",
    "DetectorConfig",
    "DriftDiagnostic",
    "DriftTestResult",
    "EvaluatorState",
    "KernelDensity",
    "ModelState",
    "OutlierReport",
    "ProjectionModel",
    "StreamJob",
    "StreamingEvaluator",
    "ThresholdModel",
    "TimeSeriesCollection",
    "Window",
    "WindowOutcome",
    "calibrate_threshold",
    "extreme_value_threshold",
    "fit_projection",
    "kde_two_sample_test",
    "normal_scale_bandwidth",
    "project",
    "run_streams",
    "scv_bandwidth",
    "sliding_windows",
]
