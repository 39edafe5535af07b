"""
Run independent streams on a process pool.

Streams share nothing, so each one gets its own evaluator in its own worker.
Results come back in job order.
"""

import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass

import numpy as np
import structlog

from .evaluator import StreamingEvaluator
from .models import DetectionResult, DetectorConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, eq=False)
class StreamJob:
    """One training collection and the stream it monitors"""

    name: str
    train: np.ndarray
    stream: np.ndarray


def run_stream(job: StreamJob, config: DetectorConfig | None = None) -> DetectionResult:
    """Evaluate a single stream with a fresh evaluator"""
    evaluator = StreamingEvaluator(config)
    result = evaluator.run(job.train, job.stream)
    logger.info("Stream job finished", job=job.name, windows=result.n_windows)
    return result


def run_streams(
    jobs: list[StreamJob],
    config: DetectorConfig | None = None,
    max_workers: int | None = None,
) -> list[DetectionResult]:
    """Evaluate several independent streams

    Args:
        jobs: Streams to evaluate
        config: Detector configuration shared by every job
        max_workers: Worker processes (default: one per CPU, at most one per job)

    Returns:
        One DetectionResult per job, in job order
    """
    jobs = list(jobs)
    if not jobs:
        logger.info("No stream jobs to run")
        return []

    config = config or DetectorConfig()
    config.validate()

    workers = _resolve_workers(len(jobs), max_workers)
    logger.info("Running stream jobs", jobs=len(jobs), workers=workers)

    if workers == 1:
        return [run_stream(job, config) for job in jobs]

    with ProcessPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(run_stream, job, config) for job in jobs]
        return [future.result() for future in futures]


def _resolve_workers(n_jobs: int, max_workers: int | None) -> int:
    cpu = os.cpu_count() or 1
    if max_workers is None:
        return min(cpu, n_jobs)
    return max(1, min(max_workers, n_jobs))
