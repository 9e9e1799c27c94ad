"""
Command line entry point.

Usage:
    python -m meet_recorder                      # config from $BOT_CONFIG
    python -m meet_recorder --config bot.yaml    # config from a file
    meet-recorder -v --config bot.json
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from meet_recorder.bot import run_bot
from meet_recorder.config import CONFIG_ENV_VAR, load_config
from meet_recorder.errors import ConfigurationError, ExitCode

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Log to stderr without timestamps (the container runtime adds its own)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meet-recorder",
        description="Join a meeting and record audio, video and speaker activity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"YAML or JSON bot config (default: ${CONFIG_ENV_VAR})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


def main(args: Optional[list] = None) -> None:
    parsed = create_argument_parser().parse_args(args)
    configure_logging(verbose=parsed.verbose)

    try:
        config = load_config(parsed.config)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(int(ExitCode.FAILURE))

    sys.exit(asyncio.run(run_bot(config)))


if __name__ == "__main__":
    main()
