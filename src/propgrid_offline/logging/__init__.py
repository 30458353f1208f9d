from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from propgrid_offline.config.models import LoggingSettings

LOG_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request access lines from aiohttp.web drown out the cache decisions.
_NOISY_LOGGERS = ("aiohttp.access",)


def _resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def _build_file_handler(path: Path, backup_count: int) -> TimedRotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        interval=1,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    return handler


def init_logging(settings: LoggingSettings) -> None:
    """
    Configure the root logger for the cache manager process.

    Existing root handlers are replaced. A console handler is always installed; a daily
    rotating file handler is added when ``settings.file.path`` is non-empty. A file handler
    that cannot be opened is reported and skipped so the process still starts.
    """

    level = _resolve_level(settings.level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    file_path = settings.file.path.strip()
    if not file_path:
        return

    try:
        file_handler = _build_file_handler(Path(file_path), settings.file.rotation.backup_count)
    except OSError:
        root_logger.error("File logging handler failed to initialize. path=%s", file_path, exc_info=True)
        return
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


__all__ = ["init_logging"]
