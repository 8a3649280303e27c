"""Filesystem locations used by frame_logger."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

# Default key=value configuration shipped with the project
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# Per-user state, relocatable for read-only installs and tests
_USER_STATE_ENV = os.environ.get("FRAME_LOGGER_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".frame_logger")
USER_CONFIG_OVERRIDES_DIR = USER_STATE_DIR / "config_overrides"
DEFAULT_BLOB_ROOT = USER_STATE_DIR / "blobs"


__all__ = [
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "CONFIG_PATH",
    "USER_STATE_DIR",
    "USER_CONFIG_OVERRIDES_DIR",
    "DEFAULT_BLOB_ROOT",
]
