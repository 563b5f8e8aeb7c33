from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "server.yaml"


def config_path() -> Path:
    return Path(os.getenv("MCP_SERVER_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_config(path: Path, required: bool = True) -> Dict[str, Any]:
    if not path.exists():
        if required:
            raise FileNotFoundError(f"MCP server config not found at {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping")
    return data


def load_server_config() -> Dict[str, Any]:
    """
    Load the server config.

    An explicit MCP_SERVER_CONFIG must exist; the bundled default file may
    be missing (e.g. in a wheel install), in which case defaults apply.
    """
    path = config_path()
    return load_config(path, required="MCP_SERVER_CONFIG" in os.environ)
