"""Logging setup for Cairn.

Two streams are written under ``<data dir>/logs``:

- ``local-YYYY-MM-DD.log``: regular module logging for the ``cairn`` logger tree
- ``store-events-YYYY-MM-DD.log``: one line per store event (guarded mutations,
  migrations, scope changes), easy to grep when auditing what an agent did
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from cairn.config import get_config

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

logger = logging.getLogger(__name__)


def _log_dir() -> Path:
    log_dir = get_config().resolved_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_cairn_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``cairn`` logger with a dated file handler.

    Args:
        level: Level name (case-insensitive). Defaults to the configured
            ``log_level``; unknown names fall back to INFO.

    Returns:
        The configured ``cairn`` logger. Calling this again does not add
        duplicate handlers.
    """
    if level is None:
        level = get_config().log_level

    log_level = getattr(logging, str(level).upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logger = logging.getLogger("cairn")
    logger.setLevel(log_level)

    date_str = datetime.now().strftime("%Y-%m-%d")
    log_file = _log_dir() / f"local-{date_str}.log"

    has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    if not has_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if log_level == logging.DEBUG:
        has_console = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in logger.handlers
        )
        if not has_console:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(console)

    return logger


def log_store_event(event_type: str, details: str) -> None:
    """Append a single event line to today's store-events log.

    Events are written after the change they describe has committed, so a
    log directory that cannot be written is reported and otherwise ignored.
    """
    date_str = datetime.now().strftime("%Y-%m-%d")
    timestamp = datetime.now().isoformat(timespec="seconds")
    try:
        event_file = _log_dir() / f"store-events-{date_str}.log"
        with open(event_file, "a", encoding="utf-8") as f:
            f.write(f"{timestamp} | {event_type} | {details}\n")
    except OSError as e:
        logger.warning(f"Could not write store event ({event_type} | {details}): {e}")


def log_guard(action: str, target: str, result: str, mode: str = "guarded") -> None:
    """Record the outcome of a guarded mutation.

    ``mode`` is ``bypass`` when the permission override setting was active.
    """
    log_store_event("guard", f"mode={mode} | action={action} | target={target} | result={result}")


def log_migration(step: str, count: int) -> None:
    log_store_event("migration", f"step={step} | rows={count}")


def log_scope(action: str, project: Optional[str]) -> None:
    log_store_event("scope", f"action={action} | project={project or 'global'}")
