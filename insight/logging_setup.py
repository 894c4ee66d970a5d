from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parent.parent
LOG_DIR = Path(os.getenv("INSIGHT_LOG_DIR") or ROOT / "logs")
INSIGHT_LOG = "insight.log"
INSIGHT_EVENTS_LOG = "insight_events.log"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _safe_mkdir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return True


def _rotating_handler(path: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=1_000_000,
        backupCount=2,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    return handler


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Configure rotating file logging for insight and its structured event log."""
    target = Path(log_dir) if log_dir else LOG_DIR
    if not _safe_mkdir(target):
        # Without a writable directory, leave logging to the host application.
        return

    logger = logging.getLogger("insight")
    logger.setLevel(level)
    logger.addHandler(_rotating_handler(target / INSIGHT_LOG))

    # Dedicated structured event logger (JSON lines).
    event_logger = logging.getLogger("insight.events")
    event_logger.setLevel(logging.INFO)
    event_logger.addHandler(_rotating_handler(target / INSIGHT_EVENTS_LOG))
    event_logger.propagate = False


__all__ = ["setup_logging"]
