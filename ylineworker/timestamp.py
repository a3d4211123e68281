"""Timestamps for file names."""

from __future__ import annotations

from datetime import datetime

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def current_timestamp_str(now: datetime | None = None) -> str:
    """Return local time as ``YYYY-MM-DD_HH-MM-SS``.

    ``now`` defaults to the current time; an aware datetime is converted to
    local time first.
    """
    if now is None:
        now = datetime.now()
    elif now.tzinfo is not None:
        now = now.astimezone()
    return now.strftime(TIMESTAMP_FORMAT)