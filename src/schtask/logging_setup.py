from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from schtask.config import Settings


def setup_logging(settings: Settings) -> logging.Logger:
    """Log to a daily file under the logs directory and to the console."""

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_dir is not None:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"schtask_{datetime.now().strftime('%Y%m%d')}.log"
        handlers.insert(0, logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("schtask")
