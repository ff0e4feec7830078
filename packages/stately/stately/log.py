"""Logging configuration helpers."""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: str = "INFO",
    console: bool = True,
    path: str | Path | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> None:
    """Route ``stately`` log records to the console and/or a rotating file.

    Machines built with ``debug=True`` trace at DEBUG, so pass
    ``level="DEBUG"`` to see them.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATEFMT)

    handlers: list[logging.Handler] = []
    if path is not None:
        log_path = Path(path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    if console:
        handlers.append(logging.StreamHandler())

    logger = logging.getLogger("stately")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(log_level)
