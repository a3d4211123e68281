"""Switch the console streams to UTF-8."""

from __future__ import annotations

import contextlib
import io
import locale
import sys


def set_console_utf8() -> None:
    """Make the standard streams use UTF-8.

    On Linux the process locale is also set to ``en_US.UTF-8``. Failures are
    ignored: a console that cannot be switched is left as it is.
    """
    if sys.platform.startswith("linux"):
        with contextlib.suppress(locale.Error):
            locale.setlocale(locale.LC_ALL, "en_US.UTF-8")

    for stream in (sys.stdin, sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is None:
            continue
        with contextlib.suppress(ValueError, OSError, io.UnsupportedOperation):
            reconfigure(encoding="utf-8")