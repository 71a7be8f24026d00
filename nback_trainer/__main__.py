from __future__ import annotations

import logging
import os

from .app import run
from .config import LOG_LEVEL_ENV


def _configure_logging() -> None:
    """Route library logging to stderr; level comes from ``NBACK_LOG_LEVEL``."""
    name = os.environ.get(LOG_LEVEL_ENV, "WARNING").strip().upper()
    level = getattr(logging, name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    """Entry point for running the trainer from the command line."""
    _configure_logging()
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
