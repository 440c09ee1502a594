from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"


def get_app_paths(environ: dict[str, str] | None = None) -> AppPaths:
    env = os.environ if environ is None else environ
    local = env.get("LOCALAPPDATA")
    if local:
        base = Path(local) / "Schtask"
    else:
        base = Path.home() / ".schtask"
    return AppPaths(base_dir=base)
