"""Logging setup for the CosmicPanel daemon.

The entrypoint builds one logger with :func:`get_logger` and hands it to
every component, so nothing writes through a module-global logger that
could be swapped out from under it.
"""

import logging
import logging.handlers
import os
import pathlib
from typing import Dict, Optional, Union

# Cache created loggers so repeated calls don't duplicate handlers
_LOGGER_CACHE: Dict[str, logging.Logger] = {}

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def get_logger(
    name: str = "cosmicpanel",
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """Return a configured :class:`logging.Logger`.

    * Console handler always.
    * Rotating file handler (5MB x5 backups) in ``log_dir`` when given.
    * Reuses the cached logger on subsequent calls; only the level is updated.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if name in _LOGGER_CACHE:
        logger = _LOGGER_CACHE[name]
        logger.setLevel(level)
        return logger

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)

    if log_dir:
        pathlib.Path(log_dir).mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=5_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(fh)

    _LOGGER_CACHE[name] = logger
    return logger
