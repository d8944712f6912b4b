"""Logging setup for the service."""

import logging
import sys


def setup_logging(level_name: str) -> None:
    """Configure root logging with a single stdout handler.

    Args:
        level_name: Level name such as "INFO" or "debug". Unknown names fall
            back to INFO.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
