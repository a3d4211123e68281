"""Locations on disk: the per-user application data directory and the executable's directory."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value) if value else None


def get_app_data_dir() -> Path | None:
    """Return the per-user application data directory.

    On Windows this is ``%APPDATA%``, on Linux ``$HOME``. ``None`` is returned
    when the variable is unset or empty, or on any other platform.
    """
    if sys.platform.startswith("win"):
        return _env_path("APPDATA")
    if sys.platform.startswith("linux"):
        return _env_path("HOME")
    return None


def get_executable_path() -> Path:
    """Return the directory that holds the running program.

    Raises RuntimeError when the program's location cannot be determined.
    """
    if getattr(sys, "frozen", False):
        target = sys.executable
    else:
        target = sys.argv[0] if sys.argv else ""
    if not target:
        raise RuntimeError("Cannot retrieve executable path")
    return Path(target).resolve().parent