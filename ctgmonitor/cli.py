"""Command-line entry point that starts the server."""

from __future__ import annotations

import argparse
import logging
import sys

from .config import read_config
from .database import DatabaseError
from .server import Server


def main(argv: list[str] | None = None) -> int:
    """Read the configuration and run the server; exit with 1 on setup errors."""
    parser = argparse.ArgumentParser(prog="ctgmonitor")
    parser.add_argument(
        "-c", dest="config", default="config/config.yaml", help="path to config file"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    logger = logging.getLogger("ctgmonitor")

    try:
        cfg = read_config(args.config)
    except (OSError, ValueError) as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    try:
        server = Server(cfg, logger)
    except DatabaseError as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())