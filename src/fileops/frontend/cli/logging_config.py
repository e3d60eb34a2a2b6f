"""Logging setup for the fileops command line and server."""

import logging
import sys


def configure_logging(level: int = logging.INFO) -> None:
    # Configure root logger once; keep output simple for terminals.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # zeroconf is chatty at DEBUG
    logging.getLogger("zeroconf").setLevel(max(level, logging.WARNING))
