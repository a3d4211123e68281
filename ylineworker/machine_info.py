"""Facts about the machine a worker runs on: host name, operating system, devices, memory."""

from __future__ import annotations

import os
import platform
import socket
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import psutil

_GIB = 1024.0 * 1024.0 * 1024.0
_CPUINFO = Path("/proc/cpuinfo")


class OS(Enum):
    WINDOWS = "Windows"
    LINUX = "Linux"
    MACOS = "MacOS"
    UNKNOWN = "Unknown"


class Architecture(Enum):
    X86 = "x86"
    X86_64 = "x86_64"
    ARM = "arm"
    ARM64 = "arm64"
    UNKNOWN = "Unknown"


class DeviceType(Enum):
    CPU = "CPU"
    GPU = "GPU"
    ACCELERATOR = "ACCELERATOR"
    UNKNOWN = "Unknown"


_ARCHITECTURES = {
    "x86_64": Architecture.X86_64,
    "amd64": Architecture.X86_64,
    "i686": Architecture.X86,
    "x86": Architecture.X86,
    "arm64": Architecture.ARM64,
    "aarch64": Architecture.ARM64,
    "arm": Architecture.ARM,
}


@dataclass
class Device:
    """A compute device of the machine."""

    type: DeviceType = DeviceType.UNKNOWN
    platform_name: str = "Unknown"
    name: str = "Unknown"
    cores: int = 0
    memory_gb: float = 0.0


@dataclass
class SystemInfo:
    os: OS = OS.UNKNOWN
    os_name: str = "Unknown"
    os_release: str = "Unknown"
    os_version: str = "Unknown"
    os_architecture: Architecture = Architecture.UNKNOWN


@dataclass
class MachineInfo:
    system_info: SystemInfo = field(default_factory=SystemInfo)
    machine_name: str = "Unknown"
    devices: list[Device] = field(default_factory=list)


def get_machine_name() -> str:
    """Return the host name; raises RuntimeError if it cannot be read."""
    try:
        name = socket.gethostname()
    except OSError as exc:
        raise RuntimeError("Failed to get Machine Name") from exc
    if not name:
        raise RuntimeError("Failed to get Machine Name")
    return name


def get_cpu_cores() -> int:
    """Number of logical CPUs, 0 when unknown."""
    return os.cpu_count() or 0


def get_total_memory_bytes() -> int:
    """Total physical memory in bytes; raises RuntimeError on failure."""
    try:
        total = int(psutil.virtual_memory().total)
    except Exception as exc:
        raise RuntimeError("Failed to get Total Memory Bytes") from exc
    if total <= 0:
        raise RuntimeError("Failed to get Total Memory Bytes")
    return total


def bytes_to_gb(num_bytes: int) -> float:
    """Convert bytes to GiB."""
    return num_bytes / _GIB


def get_total_memory_gb() -> float:
    return bytes_to_gb(get_total_memory_bytes())


def architecture_from_machine(machine: str) -> Architecture:
    """Map a machine string such as ``uname -m`` output to an Architecture."""
    return _ARCHITECTURES.get(machine.lower(), Architecture.UNKNOWN)


def _cpu_model_name() -> str:
    try:
        for line in _CPUINFO.read_text().splitlines():
            key, _, value = line.partition(":")
            if key.strip() == "model name" and value.strip():
                return value.strip()
    except OSError:
        pass
    return platform.processor() or platform.machine() or "Unknown"


def get_all_devices() -> list[Device]:
    """Describe the compute devices that can be detected.

    The host CPU is always reported, with its logical core count and the
    machine's total memory.
    """
    return [
        Device(
            type=DeviceType.CPU,
            platform_name=platform.system() or "Unknown",
            name=_cpu_model_name(),
            cores=get_cpu_cores(),
            memory_gb=get_total_memory_gb(),
        )
    ]


def _windows_system_info() -> SystemInfo:
    version = getattr(sys, "getwindowsversion")()
    release = f"{version.major}.{version.minor}"
    os_version = str(version.build)
    if version.service_pack:
        os_version += f" {version.service_pack}"
    return SystemInfo(
        os=OS.WINDOWS,
        os_name=f"Windows {release}",
        os_release=release,
        os_version=os_version,
        os_architecture=architecture_from_machine(platform.machine()),
    )


def get_system_info() -> SystemInfo:
    """Operating system name, release, version and architecture.

    Raises RuntimeError when the information cannot be read.
    """
    if sys.platform.startswith("win"):
        try:
            return _windows_system_info()
        except (AttributeError, OSError) as exc:
            raise RuntimeError("Failed to get OS Info") from exc

    try:
        uts = os.uname()
    except (AttributeError, OSError) as exc:
        raise RuntimeError("Failed to get OS Info") from exc

    if sys.platform.startswith("linux"):
        kind = OS.LINUX
    elif sys.platform == "darwin":
        kind = OS.MACOS
    else:
        kind = OS.UNKNOWN
    return SystemInfo(
        os=kind,
        os_name=uts.sysname,
        os_release=uts.release,
        os_version=uts.version,
        os_architecture=architecture_from_machine(uts.machine),
    )


def get_machine_info() -> MachineInfo:
    return MachineInfo(
        system_info=get_system_info(),
        machine_name=get_machine_name(),
        devices=get_all_devices(),
    )