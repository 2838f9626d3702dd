from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator


_configured = False

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    level = os.getenv("PLATFORM_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    _ensure_base_logger()
    return logging.getLogger(name)


@contextmanager
def timed(logger: logging.Logger, message: str, *args: object) -> Iterator[None]:
    """Log ``message`` on entry and the elapsed time on exit, even on failure."""

    logger.info(message, *args)
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info("done in %.2fs", time.perf_counter() - start)
