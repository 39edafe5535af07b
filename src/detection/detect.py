"""
CLI for streaming outlier detection over CSV data.

Usage:
    python -m src.detection.detect --train train.csv --stream stream.csv [options]
"""

import argparse
import json
import logging
import os
import sys

import pandas as pd
import structlog

from src.core.logger import setup_logging
from src.features import list_extractors

from .evaluator import StreamingEvaluator
from .models import DetectorConfig, TimeSeriesCollection

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Outlier detection over a collection of streaming time series",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage, one window per training length
        python -m src.detection.detect --train train.csv --stream stream.csv

        # Overlapping windows with concept drift
        python -m src.detection.detect --train train.csv --stream stream.csv \\
            --window-length 150 --window-skip 50 --concept-drift

        # Write reports to a file
        python -m src.detection.detect --train train.csv --stream stream.csv --output reports.jsonl
        """,
    )

    # Input / output
    parser.add_argument("--train", required=True, help="CSV of training data, one column per series")
    parser.add_argument("--stream", required=True, help="CSV of the stream, same columns as --train")
    parser.add_argument(
        "--output",
        help="Write one JSON report per window to this file (default: stdout)",
    )
    parser.add_argument(
        "--missing-value",
        type=float,
        help="Sentinel marking missing observations (NaN is always missing)",
    )

    # Windowing
    parser.add_argument("--window-length", type=int, help="Window length (default: training length)")
    parser.add_argument("--window-skip", type=int, help="Window skip (default: window length)")

    # Threshold
    parser.add_argument(
        "--p-rate",
        type=float,
        default=float(os.getenv("ODDSTREAM_P_RATE", "0.001")),
        help="Target false positive rate (default: 0.001)",
    )
    parser.add_argument("--trials", type=int, default=500, help="Monte-Carlo trials (default: 500)")
    parser.add_argument(
        "--seed",
        type=int,
        default=int(os.getenv("ODDSTREAM_SEED", "0")),
        help="Random seed (default: 0)",
    )
    parser.add_argument("--n-jobs", type=int, default=1, help="Threads for Monte-Carlo trials")

    # Concept drift
    parser.add_argument("--concept-drift", action="store_true", help="Adapt to concept drift")
    parser.add_argument(
        "--cd-alpha",
        type=float,
        default=0.05,
        help="Significance level of the drift test (default: 0.05)",
    )

    # Projection / features
    parser.add_argument(
        "--classical",
        action="store_true",
        help="Use classical instead of robust standardization and covariance",
    )
    parser.add_argument(
        "--extractor",
        default="tsmeasures",
        choices=list_extractors(),
        help="Feature extractor (default: tsmeasures)",
    )
    parser.add_argument("--period", type=int, default=1, help="Seasonal period of the series")

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config(args) -> DetectorConfig:
    """Build configuration from arguments"""
    return DetectorConfig(
        p_rate=args.p_rate,
        trials=args.trials,
        seed=args.seed,
        n_jobs=args.n_jobs,
        window_length=args.window_length,
        window_skip=args.window_skip,
        concept_drift=args.concept_drift,
        cd_alpha=args.cd_alpha,
        robust=not args.classical,
        extractor_name=args.extractor,
        extractor_config={"period": args.period},
    )


def load_collection(path: str, missing_value: float | None = None) -> TimeSeriesCollection:
    """Read a CSV with one column per series"""
    frame = pd.read_csv(path)
    if missing_value is None:
        return TimeSeriesCollection.from_frame(frame)
    return TimeSeriesCollection.from_frame(frame, missing_value=missing_value)


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting outlier detection", train=args.train, stream=args.stream)

    try:
        config = build_config(args)
        train = load_collection(args.train, args.missing_value)
        stream = load_collection(args.stream, args.missing_value)

        evaluator = StreamingEvaluator(config)
        result = evaluator.run(train, stream)

        lines = [json.dumps(record) for record in result.to_records()]
        if args.output:
            with open(args.output, "w") as f:
                f.write("\n".join(lines) + "\n")
            logger.info("Reports written", output=args.output, windows=result.n_windows)
        else:
            for line in lines:
                print(line)

        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Detection failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
