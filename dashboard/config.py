# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: configuration loader for segdiff. loads settings from a JSON file and environment variables,
      with sensible defaults. handles PyInstaller frozen executables by detecting the base directory
      correctly. returns a frozen Config dataclass with the paths and display/server settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

# load environment variables from .env file before reading any SEGDIFF_* values
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass  # python-dotenv is optional, but required for .env support


# figure out where the app is running from (handles PyInstaller bundles)
def _resolve_base_dir() -> Path:
    import sys

    # if we are frozen (PyInstaller), use the executable's directory
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    # otherwise, go up one level from this file (dashboard/config.py -> project root)
    return Path(__file__).resolve().parents[1]


# frozen dataclass to hold all config values (immutable once created)
@dataclass(frozen=True)
class Config:
    base_dir: Path  # root directory of the project
    host: str  # web server host address
    port: int  # web server port number
    pane_width: int  # bytes per rendered line, only used for lines-per-segment
    max_length: int  # initial cap on bytes read per source
    length_step: int  # how much one "load more" raises the cap
    max_upload_mb: int  # largest accepted upload through the API


# get a config value with priority: environment variable > JSON file > default
def _get(obj: dict, key: str, default):
    # check for environment variable first (SEGDIFF_* prefix)
    env = os.getenv(f"SEGDIFF_{key.upper()}")
    if env is not None:
        # try to coerce to int/float when default is numeric
        if isinstance(default, int):
            try:
                return int(env)
            except ValueError:
                return default
        if isinstance(default, float):
            try:
                return float(env)
            except ValueError:
                return default
        # for strings, just return the env var as-is
        return env
    # fall back to JSON file value, or default if not found
    return obj.get(key, default)


# numbers that must stay positive fall back to the default otherwise
def _positive(value, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


# load configuration from JSON file and environment variables
def load_config() -> Config:
    # base directory can be overridden by env var, otherwise auto-detect
    base = Path(os.getenv("SEGDIFF_BASE_DIR") or _resolve_base_dir())
    # config file lives in data/config.json
    cfg_file = base / "data" / "config.json"
    obj = {}
    # try to load the JSON config file if it exists
    if cfg_file.exists():
        try:
            obj = json.loads(cfg_file.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError):
            # if JSON is broken, just use empty dict (all defaults)
            obj = {}
        if not isinstance(obj, dict):
            obj = {}

    # each value checks: env var > JSON file > default
    return Config(
        base_dir=base,
        host=_get(obj, "host", "127.0.0.1"),
        port=_positive(_get(obj, "port", 8766), 8766),
        pane_width=_positive(_get(obj, "pane_width", 16), 16),
        max_length=_positive(_get(obj, "max_length", 1024), 1024),
        length_step=_positive(_get(obj, "length_step", 1024), 1024),
        max_upload_mb=_positive(_get(obj, "max_upload_mb", 64), 64),
    )
