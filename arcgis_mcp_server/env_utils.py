"""
Environment helpers: production detection and flag parsing.
"""
from __future__ import annotations

import os
from typing import Optional


def is_production_env() -> bool:
    """
    True when ENVIRONMENT, APP_ENV or NODE_ENV is "production"
    (case-insensitive, surrounding whitespace ignored).
    """
    for name in ("ENVIRONMENT", "APP_ENV", "NODE_ENV"):
        if os.getenv(name, "").strip().lower() == "production":
            return True
    return False


def env_flag(name: str, default: str = "0") -> bool:
    value = os.getenv(name, default).strip().lower()
    return value not in {"0", "false", "no", "off", ""}


def first_env(*names: str) -> Optional[str]:
    """Return the first non-blank value among the given environment variables."""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None
