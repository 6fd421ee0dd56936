"""Logger setup shared by the CLI and the HTTP app."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import sys

_FORMAT = "[%(asctime)s] - %(name)s %(levelname)s %(message)s"
_configured: dict[str, logging.Logger] = {}


def setup_logger(name: str = "doclibrary", level: str | int = logging.INFO) -> logging.Logger:
    """
    Configure the named logger once and return it.

    A stderr handler is always attached. When LOG_TO_FILE is truthy a file
    handler writing to LOG_FILE_PATH (default doclibrary.log) is added too.

    Args
        name: name of the logger, usually the package name
        level: logging level name or number
    """
    if name in _configured:
        return _configured[name]

    logger = logging.getLogger(name)
    numeric_level = level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.INFO)
    logger.setLevel(numeric_level)
    formatter = logging.Formatter(_FORMAT)

    # Reloading dev servers re-import this module; keep existing handlers.
    if logger.handlers:
        _configured[name] = logger
        return logger

    if os.getenv("LOG_TO_FILE", "false").lower() in {"1", "true", "yes", "on"}:
        target = Path(os.getenv("LOG_FILE_PATH", "doclibrary.log"))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(target, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError:
            logger.exception("File logging disabled: cannot write to %s", target)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    _configured[name] = logger
    return logger
