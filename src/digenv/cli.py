"""Command line entry point."""

import logging
import argparse
import os
import sys
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .config import DigenvConfig
from .pipeline import PipelineBuilder, Supervisor
from digenv.common import setup_logging, ConfigLoader, ConfigurationError, SetupError

# Application name derived from package name
_package = __package__ or "digenv"
APP_NAME = _package.replace('_', '-').replace('.', '-')

# Exit code when the pipeline itself cannot be set up or waited for
SETUP_FAILURE_EXIT_CODE = 1

INTERRUPTED_EXIT_CODE = 130


def run_command(
    config: DigenvConfig,
    filter_args: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
    supervisor: Optional[Supervisor] = None,
) -> int:
    """Run the environment pipeline.

    Args:
        config: Configuration object
        filter_args: Arguments for the filter stage; empty skips that stage
        environ: Environment used to pick the pager (default: os.environ)
        supervisor: Supervisor to run the pipeline with

    Returns:
        Aggregate exit code of the pipeline, or 1 if it could not be set up
    """
    logger_name = __package__ or __name__
    logger = logging.getLogger(logger_name)

    if supervisor is None:
        supervisor = Supervisor(terminate_on_abort=config.pipeline.terminate_on_abort)

    try:
        pipeline = PipelineBuilder(config.pipeline, environ).build(filter_args)
        exit_code = supervisor.run(pipeline)
        logger.info(f"Pipeline finished: {{'exit_code': {exit_code}}}")
        return exit_code

    except SetupError as e:
        logger.error(f"{e.message} {e.context}")
        return SETUP_FAILURE_EXIT_CODE
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return INTERRUPTED_EXIT_CODE


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    Abbreviations and ``-h`` are disabled so that filter options such as
    ``-h`` or ``--co`` reach the filter untouched.
    """
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Show the environment through a pager. Arguments that are not "
            "digenv options are passed to the filter (grep) in order."
        ),
        usage="%(prog)s [--config PATH] [--log-level LEVEL] [--log-format FMT] [FILTER_ARGS ...]",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--help",
        action="store_true",
        help="Show this help message and exit"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides config)"
    )
    parser.add_argument(
        "--log-format",
        type=str.lower,
        choices=["simple", "detailed", "json"],
        help="Log format (overrides config)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for digenv."""
    parser = build_parser()
    args, filter_args = parser.parse_known_args(argv)

    if args.help:
        parser.print_help(sys.stderr)
        return 0

    loader = ConfigLoader(
        app_name=APP_NAME,
        config_class=DigenvConfig
    )

    try:
        config = loader.load(defaults_path=args.config)
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__package__ or __name__).error(e.message)
        return SETUP_FAILURE_EXIT_CODE

    level = args.log_level or config.logging.level
    log_format = args.log_format or config.logging.format
    log_file = Path(config.logging.file) if config.logging.file else None
    setup_logging(level=level, format=log_format, log_file=log_file)

    return run_command(config=config, filter_args=filter_args, environ=os.environ)


if __name__ == "__main__":
    sys.exit(main())
