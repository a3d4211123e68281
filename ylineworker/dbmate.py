"""Locating, downloading and running the dbmate migration tool."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
import sys
import tempfile
import urllib.error
import urllib.request
from pathlib import Path

log = logging.getLogger(__name__)

DBMATE_BINARY = "dbmate.exe" if sys.platform.startswith("win") else "dbmate"


def is_dbmate_installed(dbmate_path: Path | str) -> bool:
    """Whether the dbmate binary exists in ``dbmate_path``."""
    return (Path(dbmate_path) / DBMATE_BINARY).exists()


def run_dbmate(dbmate_path: Path | str, dbmate_cmd: str, db_url: str) -> tuple[str, int]:
    """Run ``dbmate <dbmate_cmd>`` with ``DATABASE_URL`` set for the child only.

    Returns the combined log (standard output, then standard error, then the
    exit code) and the exit code. Raises RuntimeError if it cannot be started.
    """
    binary = Path(dbmate_path) / DBMATE_BINARY
    env = dict(os.environ, DATABASE_URL=db_url)
    try:
        completed = subprocess.run(
            [str(binary), dbmate_cmd],
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
    except OSError as exc:
        raise RuntimeError(str(exc)) from exc

    parts = ["\n"]
    parts.extend(f"{line}\n" for line in completed.stdout.splitlines())
    parts.extend(f"{line}\n" for line in completed.stderr.splitlines())
    parts.append(f"\nDBMATE Exit code 退出代码: {completed.returncode}\n")
    return "".join(parts), completed.returncode


def download_dbmate(download_url: str, download_name: str, dbmate_path: Path | str) -> bool:
    """Fetch ``download_url/download_name`` into ``dbmate_path`` as the dbmate binary.

    Returns whether the download succeeded; failures are logged. Raises
    RuntimeError on platforms other than Windows and Linux.
    """
    windows = sys.platform.startswith("win")
    if not windows and not sys.platform.startswith("linux"):
        raise RuntimeError("Unsupported platform 不支持的系统")

    full_url = f"{download_url}/{download_name}"
    target_dir = Path(dbmate_path)
    destination = target_dir / DBMATE_BINARY
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        with urllib.request.urlopen(full_url) as response, tempfile.NamedTemporaryFile(
            dir=target_dir, delete=False
        ) as tmp:
            shutil.copyfileobj(response, tmp)
            tmp_name = tmp.name
        os.replace(tmp_name, destination)
    except (urllib.error.URLError, OSError, ValueError) as exc:
        log.error("Failed to download dbmate from %s: %s", full_url, exc)
        return False

    if not windows:
        mode = destination.stat().st_mode
        destination.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return True