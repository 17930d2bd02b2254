"""
config.py - Runtime settings

Settings come from config/settings.json (optional) and are overridden
by SALESYNC_* environment variables, which may themselves be loaded
from a .env file.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger("Config")

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = BASE_DIR / "config"
DATA_DIR = BASE_DIR / "data"
SETTINGS_PATH = CONFIG_DIR / "settings.json"
ENV_PATH = BASE_DIR / ".env"

ENV_PREFIX = "SALESYNC_"


@dataclass
class Settings:
    server_url: str = "http://localhost:3000/api"
    db_path: str = str(DATA_DIR / "local.db")
    request_timeout: float = 15.0
    probe_interval: float = 10.0
    max_failures_before_offline: int = 1
    bridge_host: str = "0.0.0.0"
    bridge_port: int = 8002
    api_host: str = "127.0.0.1"
    api_port: int = 8001
    log_level: str = "INFO"


def load_env_file(path) -> None:
    """Load KEY=VALUE lines into os.environ (existing variables win)."""
    if not os.path.exists(path):
        return
    with open(path, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, val = line.split('=', 1)
            os.environ.setdefault(key.strip(), val.strip().strip('"').strip("'"))


def _coerce(name: str, kind, value):
    if kind is int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Setting '{name}' must be an integer, got {value!r}")
    if kind is float:
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Setting '{name}' must be a number, got {value!r}")
    return str(value)


def load_settings(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    path = Path(path) if path is not None else SETTINGS_PATH
    env = os.environ if env is None else env

    values = {}
    if path.exists():
        with open(path, 'r') as f:
            values = json.load(f)
        logger.info(f"Loaded settings from {path}")

    settings = Settings()
    for f in fields(Settings):
        kind = type(getattr(settings, f.name))
        if f.name in values:
            setattr(settings, f.name, _coerce(f.name, kind, values[f.name]))
        env_value = env.get(ENV_PREFIX + f.name.upper())
        if env_value is not None:
            setattr(settings, f.name, _coerce(f.name, kind, env_value))
    return settings
