"""CPU and memory usage sampling."""

from __future__ import annotations

import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import psutil

PROC_STAT = Path("/proc/stat")
PROC_MEMINFO = Path("/proc/meminfo")

_MEM_TOTAL = re.compile(r"MemTotal:\s*(\d+)")
_MEM_AVAILABLE = re.compile(r"MemAvailable:\s*(\d+)")


@dataclass(frozen=True)
class CpuTimes:
    """Cumulative CPU time counters from the aggregate ``cpu`` line."""

    user: int
    nice: int
    system: int
    idle: int

    @property
    def total(self) -> int:
        return self.user + self.nice + self.system + self.idle


@dataclass
class UsageInfoCPU:
    """CPU and memory usage in percent; -1.0 marks a value that could not be read."""

    cpu_usage: float
    memory_usage: float


def cross_platform_sleep(seconds: int) -> None:
    """Sleep for ``seconds``; negative values sleep for zero."""
    time.sleep(max(seconds, 0))


def parse_cpu_times(text: str) -> CpuTimes:
    """Parse the first line of ``/proc/stat``.

    Raises ValueError when the line is missing or malformed.
    """
    lines = text.splitlines()
    if not lines:
        raise ValueError("empty cpu statistics")
    fields = lines[0].split()
    if len(fields) < 5:
        raise ValueError(f"malformed cpu statistics line: {lines[0]!r}")
    user, nice, system, idle = (int(value) for value in fields[1:5])
    return CpuTimes(user, nice, system, idle)


def read_cpu_times(path: Path | str = PROC_STAT) -> CpuTimes | None:
    """Read CPU counters from ``path``, or ``None`` if they cannot be read."""
    try:
        return parse_cpu_times(Path(path).read_text())
    except (OSError, ValueError):
        return None


def calculate_cpu_usage(prev: CpuTimes, curr: CpuTimes) -> float:
    """Percentage of non-idle time between two samples; 0.0 if no time passed."""
    total_diff = curr.total - prev.total
    idle_diff = curr.idle - prev.idle
    if total_diff == 0:
        return 0.0
    return (total_diff - idle_diff) * 100.0 / total_diff


def parse_memory_usage(text: str) -> float:
    """Percentage of memory in use, from the contents of ``/proc/meminfo``.

    Raises ValueError when a value is malformed or the total is zero.
    """
    total = 0
    available = 0
    for line in text.splitlines():
        if line.startswith("MemTotal:"):
            match = _MEM_TOTAL.match(line)
            if match is None:
                raise ValueError(f"malformed line: {line!r}")
            total = int(match.group(1))
        elif line.startswith("MemAvailable:"):
            match = _MEM_AVAILABLE.match(line)
            if match is None:
                raise ValueError(f"malformed line: {line!r}")
            available = int(match.group(1))
    if total == 0:
        raise ValueError("total memory is zero or missing")
    return (total - available) * 100.0 / total


def memory_usage(path: Path | str = PROC_MEMINFO) -> float:
    """Percentage of memory in use read from ``path``, or -1.0 on failure."""
    try:
        return parse_memory_usage(Path(path).read_text())
    except (OSError, ValueError):
        return -1.0


def _psutil_usage() -> UsageInfoCPU:
    try:
        cpu = float(psutil.cpu_percent(interval=1.0))
    except Exception:
        cpu = -1.0
    try:
        memory = float(psutil.virtual_memory().percent)
    except Exception:
        memory = -1.0
    return UsageInfoCPU(cpu, memory)


def get_usage_info_cpu() -> UsageInfoCPU:
    """Sample CPU usage over one second and read memory usage."""
    if not sys.platform.startswith("linux"):
        return _psutil_usage()

    prev = read_cpu_times()
    cross_platform_sleep(1)
    curr = read_cpu_times()
    if prev is None or curr is None:
        cpu = -1.0
    else:
        cpu = calculate_cpu_usage(prev, curr)
    return UsageInfoCPU(cpu, memory_usage())