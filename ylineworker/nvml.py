"""Querying NVIDIA GPUs through an NVML backend.

The backend is any object offering the raw NVML calls listed in
``REQUIRED_CALLS``. Each query call returns a ``(return_code, value)`` pair,
``init`` and ``shutdown`` return a bare return code, and ``error_string``
turns a return code into text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

NVML_SUCCESS = 0
NVML_FEATURE_ENABLED = 1
NVML_NVLINK_MAX_LINKS = 18
NVML_TEMPERATURE_GPU = 0
NVML_TEMPERATURE_THRESHOLD_GPU_MAX = 3

UNSUPPORTED = "Unsupport"

REQUIRED_CALLS = (
    "init",
    "shutdown",
    "error_string",
    "device_get_count",
    "device_get_handle_by_index",
    "device_get_name",
    "device_get_serial",
    "system_get_driver_version",
    "device_get_enforced_power_limit",
    "device_get_temperature_threshold",
    "device_get_nvlink_state",
    "device_get_nvlink_version",
    "device_get_nvlink_capability",
    "device_get_utilization_rates",
    "device_get_temperature",
    "device_get_fan_speed",
    "device_get_num_fans",
    "device_get_clock_info",
    "device_get_power_usage",
    "system_get_cuda_driver_version",
    "device_get_memory_info",
)


class NVMLError(Exception):
    """Raised when NVML is unavailable or a query fails."""


class ClockType(IntEnum):
    GRAPHICS = 0
    SM = 1
    MEM = 2
    VIDEO = 3


class _NvLinkCapability(IntEnum):
    P2P_SUPPORTED = 0
    SYSMEM_ACCESS = 1
    P2P_ATOMICS = 2
    SYSMEM_ATOMICS = 3
    SLI_BRIDGE = 4
    VALID = 5


_CAPABILITY_TEXT = {
    _NvLinkCapability.P2P_SUPPORTED: (
        "P2P over NVLink is supported",
        "P2P over NVLink is not supported",
    ),
    _NvLinkCapability.SYSMEM_ACCESS: (
        "Access to system memory is supported",
        "Access to system memory is not supported",
    ),
    _NvLinkCapability.P2P_ATOMICS: (
        "P2P Atomics are supported",
        "P2P Atomics are not supported",
    ),
    _NvLinkCapability.SYSMEM_ATOMICS: (
        "System memory Atomics are supported",
        "System memory Atomics are not supported",
    ),
    _NvLinkCapability.SLI_BRIDGE: (
        "SLI Bridge is supported",
        "SLI Bridge is not supported",
    ),
    _NvLinkCapability.VALID: (
        "NVLink is valid",
        "NVLink is not valid",
    ),
}


@dataclass(frozen=True)
class Utilization:
    """Percent of time the GPU and its memory were busy over the last sample."""

    gpu: int
    memory: int


@dataclass(frozen=True)
class MemoryInfo:
    """Device memory figures in bytes."""

    total: int
    free: int
    used: int
    reserved: int = 0


@dataclass(frozen=True)
class ClockInfo:
    """Current clocks in MHz."""

    graphics_clock: int
    sm_clock: int
    mem_clock: int
    video_clock: int


@dataclass
class GpuClockInfo:
    graphics_clock: float = 0.0
    sm_clock: float = 0.0
    mem_clock: float = 0.0
    video_clock: float = 0.0


@dataclass
class UsageInfoGPU:
    gpu_usage: float = 0.0
    gpu_memory_used: float = 0.0
    gpu_temperature: float = 0.0
    gpu_clock_info: GpuClockInfo = field(default_factory=GpuClockInfo)
    gpu_power_usage: float = 0.0


@dataclass
class NvLink:
    link: int
    is_active: bool = False
    version: int | None = None
    capability: str | None = None


@dataclass
class NvFan:
    index: int
    fan_speed: float = 0.0


@dataclass
class NvDevice:
    """Static description of one GPU plus its latest usage sample.

    ``nvlinks`` is either a list of links or a string when NvLink is not supported.
    """

    index: int
    name: str = ""
    serial: str = ""
    driver_version: str = ""
    cuda_version: float = 0.0
    total_memory: float = 0.0
    power_limit: int = 0
    temperature_threshold: int = 0
    nvlinks: list[NvLink] | str = ""
    fans: list[NvFan] | None = None
    usage: UsageInfoGPU = field(default_factory=UsageInfoGPU)


class Nvml:
    """High-level access to NVML through a backend."""

    def __init__(self, backend: Any) -> None:
        if backend is None:
            raise NVMLError("Failed to load library: NVML backend is not available")
        for name in REQUIRED_CALLS:
            if not callable(getattr(backend, name, None)):
                raise NVMLError(f"Failed to load function: {name}")
        self._backend = backend
        self._closed = False
        backend.init()

    def close(self) -> None:
        """Shut NVML down; further calls are ignored."""
        if not self._closed:
            self._closed = True
            self._backend.shutdown()

    def __enter__(self) -> Nvml:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def check_result(self, result: int) -> None:
        """Raise NVMLError unless ``result`` is NVML_SUCCESS."""
        if result != NVML_SUCCESS:
            message = self._backend.error_string(result)
            raise NVMLError(f"Failed to execute NVML device query: {message}")

    def _query(self, call: str, *args: Any) -> Any:
        if self._closed:
            raise NVMLError("NVML has been shut down")
        result, value = getattr(self._backend, call)(*args)
        self.check_result(result)
        return value

    def device_count(self) -> int:
        return self._query("device_get_count")

    def device_handle(self, index: int) -> Any:
        return self._query("device_get_handle_by_index", index)

    def device_name(self, index: int) -> str:
        return self._query("device_get_name", self.device_handle(index))

    def device_serial(self, index: int) -> str:
        return self._query("device_get_serial", self.device_handle(index))

    def driver_version(self, index: int) -> str:
        """System driver version; ``index`` must name an existing device."""
        self.device_handle(index)
        return self._query("system_get_driver_version")

    def power_limit(self, index: int) -> int:
        """Enforced power limit in milliwatts."""
        return self._query("device_get_enforced_power_limit", self.device_handle(index))

    def temperature_threshold(self, index: int) -> int:
        """Temperature at which the GPU starts slowing down, in degrees C."""
        return self._query(
            "device_get_temperature_threshold",
            self.device_handle(index),
            NVML_TEMPERATURE_THRESHOLD_GPU_MAX,
        )

    def nvlink_state(self, index: int, link: int) -> bool:
        state = self._query("device_get_nvlink_state", self.device_handle(index), link)
        return state == NVML_FEATURE_ENABLED

    def nvlink_version(self, index: int, link: int) -> int:
        return self._query("device_get_nvlink_version", self.device_handle(index), link)

    def nvlink_capability(self, index: int, link: int) -> str:
        """Human-readable report of every capability of one link."""
        handle = self.device_handle(index)
        lines = []
        for capability in _NvLinkCapability:
            supported = self._query("device_get_nvlink_capability", handle, link, int(capability))
            yes, no = _CAPABILITY_TEXT[capability]
            lines.append(f"[✔] {yes}\n" if supported else f"[✘] {no}\n")
        return "".join(lines)

    def utilization_rates(self, index: int) -> Utilization:
        return self._query("device_get_utilization_rates", self.device_handle(index))

    def temperature(self, index: int) -> int:
        return self._query(
            "device_get_temperature", self.device_handle(index), NVML_TEMPERATURE_GPU
        )

    def fan_speed(self, index: int, fan_index: int) -> int:
        return self._query("device_get_fan_speed", self.device_handle(index), fan_index)

    def fan_count(self, index: int) -> int:
        return self._query("device_get_num_fans", self.device_handle(index))

    def clock_info(self, index: int, clock_type: ClockType | int) -> int:
        """Current clock of one kind, in MHz."""
        return self._query("device_get_clock_info", self.device_handle(index), int(clock_type))

    def all_clock_info(self, index: int) -> ClockInfo:
        clocks = {clock: self.clock_info(index, clock) for clock in ClockType}
        return ClockInfo(
            graphics_clock=clocks[ClockType.GRAPHICS],
            sm_clock=clocks[ClockType.SM],
            mem_clock=clocks[ClockType.MEM],
            video_clock=clocks[ClockType.VIDEO],
        )

    def power_usage(self, index: int) -> int:
        """Current power draw in milliwatts."""
        return self._query("device_get_power_usage", self.device_handle(index))

    def cuda_driver_version(self) -> float:
        """CUDA driver version as ``major + minor / 10``."""
        version = self._query("system_get_cuda_driver_version")
        major = version // 1000
        minor = (version % 1000) // 10
        return major + minor / 10.0

    def memory_info(self, index: int) -> MemoryInfo:
        return self._query("device_get_memory_info", self.device_handle(index))

    def fill_nvlinks(self, links: list[NvLink] | str, device_index: int) -> list[NvLink] | str:
        """Fill a link list with every link that answers, or mark a string as unsupported.

        A list is extended in place until the first failing link and returned;
        anything else yields ``"Unsupport"``.
        """
        if not isinstance(links, list):
            return UNSUPPORTED
        for link in range(NVML_NVLINK_MAX_LINKS):
            try:
                links.append(
                    NvLink(
                        link=link,
                        is_active=self.nvlink_state(device_index, link),
                        version=self.nvlink_version(device_index, link),
                        capability=self.nvlink_capability(device_index, link),
                    )
                )
            except NVMLError:
                break
        return links