"""Logging helpers."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(log_dir: str | None = None, level: int = logging.INFO) -> tuple[logging.Logger, str]:
    log_dir = log_dir or str(Path.home() / ".config" / "voicenow" / "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "voicenow.log")

    logger = logging.getLogger()
    logger.setLevel(level)

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        fmt = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    return logger, log_path
