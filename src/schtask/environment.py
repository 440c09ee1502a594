from __future__ import annotations

import os
from typing import Mapping

DEFAULT_DOMAIN = "."
DEFAULT_USERNAME = "SYSTEM"


def current_user_id(environ: Mapping[str, str] | None = None) -> str:
    """Return ``<USERDOMAIN>\\<USERNAME>`` for the interactive user."""

    env = os.environ if environ is None else environ
    domain = env.get("USERDOMAIN", DEFAULT_DOMAIN)
    username = env.get("USERNAME", DEFAULT_USERNAME)
    return f"{domain}\\{username}"
