"""Logging helpers for the HLB client and its command-line front end."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from hlb_client.config import load_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure process-wide logging.

    The library itself only emits records; this is called by the CLI (or by
    applications that want the same format).
    """
    settings = load_settings()
    level_name = (level or settings.logging.level).upper()
    resolved_level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if settings.logging.file:
        try:
            Path(settings.logging.file).expanduser().parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(Path(settings.logging.file).expanduser())
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)

    logging.basicConfig(level=resolved_level, handlers=handlers, force=True)
    # Keep the HTTP stack quiet unless explicitly debugging.
    if resolved_level > logging.DEBUG:
        for noisy in ("httpx", "httpcore", "botocore", "boto3", "urllib3"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

