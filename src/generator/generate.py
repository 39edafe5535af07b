"""
Synthetic Stream Generator - CLI Entry Point
Writes a training CSV and a stream CSV with injected anomalies
"""

import argparse
import dataclasses
import os
import sys

import pandas as pd
import structlog

from src.core.logger import setup_logging
from src.generator import (
    CLEAN_CONFIG,
    DEV_CONFIG,
    DRIFT_CONFIG,
    PAPER_CONFIG,
    GeneratorConfig,
    StreamGenerator,
)

logger = structlog.get_logger(__name__)


# Predefined configurations
CONFIGS = {
    "paper": PAPER_CONFIG,
    "drift": DRIFT_CONFIG,
    "dev": DEV_CONFIG,
    "clean": CLEAN_CONFIG,
}


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Synthetic time series generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
            Examples:
            # Use predefined dev config
            python -m src.generator.generate --config dev

            # Longer stream with another seed
            python -m src.generator.generate --config paper --stream-length 5000 --seed 3

            # Write somewhere else
            python -m src.generator.generate --config drift --output-dir data/drift
        """,
    )

    # Predefined config
    parser.add_argument(
        "--config", choices=list(CONFIGS.keys()), help="Use a predefined configuration"
    )

    # Generation settings
    parser.add_argument("--series", type=int, help="Number of series")
    parser.add_argument("--train-length", type=int, help="Length of the training data")
    parser.add_argument("--stream-length", type=int, help="Length of the stream")
    parser.add_argument("--seed", type=int, help="Random seed")

    # Output
    parser.add_argument(
        "--output-dir",
        default="data",
        help="Directory for train.csv and stream.csv (default: data)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config_from_args(args) -> GeneratorConfig:
    """Build a GeneratorConfig from command-line arguments"""

    # Start with predefined config if specified
    if args.config:
        config = CONFIGS[args.config]
        logger.info("Using predefined configuration", config_name=args.config)
    else:
        config = GeneratorConfig()
        logger.info("Using default configuration")

    # Override with command-line arguments
    overrides = {}
    if args.series:
        overrides["num_series"] = args.series
    if args.train_length:
        overrides["train_length"] = args.train_length
    if args.stream_length:
        overrides["stream_length"] = args.stream_length
    if args.seed is not None:
        overrides["seed"] = args.seed

    return dataclasses.replace(config, **overrides)


def write_csv(values, path: str) -> None:
    columns = [f"series_{i + 1}" for i in range(values.shape[1])]
    pd.DataFrame(values, columns=columns).to_csv(path, index=False)


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    # Setup logging
    log_level = getattr(structlog.stdlib.logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting Synthetic Stream Generator")

    try:
        config = build_config_from_args(args)
        generator = StreamGenerator(config)

        os.makedirs(args.output_dir, exist_ok=True)
        train_path = os.path.join(args.output_dir, "train.csv")
        stream_path = os.path.join(args.output_dir, "stream.csv")

        write_csv(generator.generate_training(), train_path)
        write_csv(generator.generate_stream(), stream_path)

        logger.info("Generator completed successfully", train=train_path, stream=stream_path)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Generator failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
