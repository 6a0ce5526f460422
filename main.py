import argparse
import logging
import sys
from typing import Optional, Sequence

from bootstrap import bootstrap
from config import settings
from errors import BootstrapError
from logging_utils import get_logger

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cosmicpanel",
        description="Boot the CosmicPanel daemon: configuration, system user and license",
    )
    parser.add_argument(
        "--config",
        default=settings.CONFIG_PATH,
        help="Sets the location for the configuration file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run CosmicPanel in debug mode",
    )
    parser.add_argument(
        "--dnsonly",
        action="store_true",
        help="Request a DNS only license instead of a trial if no valid license is found",
    )
    return parser

def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Entrypoint for the CosmicPanel daemon. Configures the logger, reads the
    boot flags and runs the startup sequence. Returns the process exit code.
    """
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.debug else settings.LOG_LEVEL
    logger = get_logger("cosmicpanel", level=level, log_dir=settings.LOG_DIR)

    try:
        result = bootstrap(args.config, debug=args.debug, dnsonly=args.dnsonly, logger=logger)
    except BootstrapError as e:
        logger.critical("Startup aborted: %s", e)
        return 1

    logger.debug("Startup finished (debug=%s)", result.debug)
    return 0

if __name__ == "__main__":
    sys.exit(main())
