"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from schtask.app_paths import get_app_paths

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class Settings:
    # Substrings matched against registry display names.
    class_description: str = "TaskScheduler"
    interface_description: str = "ITaskService"
    log_level: str = "INFO"
    log_dir: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        level = (env.get("SCHTASK_LOG_LEVEL") or "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            level = "INFO"
        log_dir_raw = (env.get("SCHTASK_LOG_DIR") or "").strip()
        log_dir = Path(log_dir_raw) if log_dir_raw else get_app_paths(dict(env)).logs_dir
        return cls(
            class_description=env.get("SCHTASK_CLASS_DESCRIPTION") or "TaskScheduler",
            interface_description=env.get("SCHTASK_INTERFACE_DESCRIPTION")
            or "ITaskService",
            log_level=level,
            log_dir=log_dir,
        )
