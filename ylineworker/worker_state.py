"""Worker state: identity, machine and GPU information, and the JSON messages sent to the server."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, TypeVar

from .appdata import get_app_data_dir
from .machine_info import (
    Device,
    MachineInfo,
    SystemInfo,
    get_all_devices,
    get_machine_name,
    get_system_info,
)
from .nvml import GpuClockInfo, NVMLError, NvDevice, NvLink, Nvml
from .usage import get_usage_info_cpu

log = logging.getLogger(__name__)

UUID_DIR_NAME = "YLineWorker"
UUID_FILE_NAME = "Yworker.uuid"
UUID_SIZE = 16

_GIB = 1024.0 * 1024.0 * 1024.0

_T = TypeVar("_T")


@dataclass
class WorkerData:
    """What the worker tells the server about itself, plus its connection."""

    register_secret: str = ""
    client: Any = None
    machine_info: MachineInfo = field(default_factory=MachineInfo)


# ---------------------------- machine information ----------------------------


def _attempt(func: Callable[[], _T], fallback: _T, error_msg: str, warning_msg: str) -> _T:
    try:
        return func()
    except Exception as exc:
        log.error("%s: %s", error_msg, exc)
        log.warning("%s", warning_msg)
        return fallback


def collect_machine_info() -> MachineInfo:
    """Gather machine information, falling back to "Unknown" values for parts that fail."""
    system_info = _attempt(
        get_system_info,
        SystemInfo(),
        "Failed to get system info 获取系统信息失败",
        "System information related features may not work properly 系统信息相关功能可能无法正常工作",
    )
    machine_name = _attempt(
        get_machine_name,
        "Unknown",
        "Failed to get machine name 获取机器名失败",
        "Machine name related features may not work properly 机器名相关功能可能无法正常工作",
    )
    devices = _attempt(
        get_all_devices,
        [Device()],
        "Failed to get devices 获取设备信息失败",
        "Device related features may not work properly 设备相关功能可能无法正常工作",
    )
    return MachineInfo(system_info=system_info, machine_name=machine_name, devices=devices)


def log_machine_info(info: MachineInfo) -> None:
    """Write a readable summary of ``info`` to the log."""
    system = info.system_info
    log.info("\n---------------------------- Worker Machine Info 工作机器信息 ----------------------------\n\n")
    log.info("\tMachine Name 机器名: %s", info.machine_name)
    log.info("\tSystem 系统: %s", system.os.value)
    log.info("\tSystem Name 系统名: %s", system.os_name)
    log.info("\tSystem Release 系统发行版: %s", system.os_release)
    log.info("\tSystem Version 系统版本号: %s", system.os_version)
    log.info("\tSystem Architecture 系统架构: %s", system.os_architecture.value)
    log.info("\tDevices 设备:\n")
    for device in info.devices:
        log.info("\t\tPlatform 平台: %s", device.platform_name)
        log.info("\t\tName 名称: %s", device.name)
        log.info("\t\tCores 核心数: %s", device.cores)
        log.info("\t\tMemory 内存: %.2f GB", device.memory_gb)
        log.info("\t\tType 类型: %s\n", device.type.value)
    log.info("\n----------------------------------- Worker Machine Info End 工作机器信息结束 -------------------------------------")


# ---------------------------- worker identity ----------------------------


def save_uuid(worker_uuid: uuid.UUID, path: Path | str) -> None:
    """Store the 16 raw bytes of ``worker_uuid`` at ``path``; raises RuntimeError on failure."""
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(worker_uuid.bytes)
    except OSError as exc:
        log.error("Failed to save UUID to file 存储 UUID 到: %s 失败", target)
        raise RuntimeError(f"Failed to save UUID to file 存储 UUID 失败: {target}") from exc
    log.info("UUID saved to file 存储 UUID 到: %s 成功", target)


def load_uuid(path: Path | str) -> uuid.UUID:
    """Read the worker UUID from ``path``, creating and saving a new one if the file is missing."""
    source = Path(path)
    if not source.exists():
        log.warning("UUID file does not exist UUID 文件不存在")
        log.warning("Generating new UUID 生成新的 UUID")
        worker_uuid = uuid.uuid4()
        save_uuid(worker_uuid, source)
        return worker_uuid

    try:
        data = source.read_bytes()
    except OSError as exc:
        log.error("Failed to load UUID from file 从文件加载 UUID 失败")
        raise RuntimeError("Failed to load UUID from file 从文件加载 UUID 失败") from exc
    if len(data) < UUID_SIZE:
        log.error("Failed to load UUID from file 从文件加载 UUID 失败")
        raise RuntimeError("Failed to load UUID from file 从文件加载 UUID 失败")
    log.info("UUID loaded from file 从文件加载 UUID 成功")
    return uuid.UUID(bytes=data[:UUID_SIZE])


def _default_uuid_path() -> Path:
    base = get_app_data_dir()
    if base is None or not str(base):
        log.error("Failed to get APPDATA directory 获取 APPDATA 目录失败")
        raise RuntimeError("Failed to get APPDATA directory 获取 APPDATA 目录失败")
    return base / UUID_DIR_NAME / UUID_FILE_NAME


def _nv_attempt(func: Callable[[], _T], fallback: _T, error_msg: str, warning_msg: str) -> _T:
    try:
        return func()
    except NVMLError as exc:
        log.warning("%s: %s", error_msg, exc)
        log.warning("%s", warning_msg)
        return fallback


def _gpu_value(func: Callable[[], float]) -> float:
    try:
        return func()
    except NVMLError:
        return -1.0


class Worker:
    """The state of one running worker."""

    def __init__(self, data: WorkerData | None = None, worker_uuid: uuid.UUID | None = None) -> None:
        self.data = data if data is not None else WorkerData()
        self.worker_uuid = worker_uuid if worker_uuid is not None else load_uuid(_default_uuid_path())
        self.nvml: Nvml | None = None
        self.nv_devices: list[NvDevice] | None = None
        self.usage_task: Any = None

    # ---------------------------- NVML ----------------------------

    def init_nvml(self, nvml: Nvml) -> None:
        """Attach an NVML session and load the GPUs it reports."""
        self.nvml = nvml
        self.load_nv_devices()

    def _require_nvml(self, message: str) -> Nvml:
        if self.nvml is None:
            raise RuntimeError(message)
        return self.nvml

    def _require_devices(self, message: str) -> list[NvDevice]:
        if self.nv_devices is None:
            raise RuntimeError(message)
        return self.nv_devices

    def load_nv_devices(self) -> None:
        """Read the static description of every NVIDIA GPU."""
        nvml = self._require_nvml(
            "NVML not initialized NVML, can not load Nvidia Device! 未初始化 NVML, 无法加载 Nvidia 设备!"
        )
        devices: list[NvDevice] = []
        self.nv_devices = devices
        log.info("\n\n---------------------- Loading Nvidia Device 加载 Nvidia 设备 ----------------------\n\n")

        count = _nv_attempt(
            nvml.device_count,
            0,
            "Failed to get device count 获取设备数量失败",
            "This machine may not have Nvidia GPU 本机可能没有 Nvidia GPU",
        )

        for index in range(count):
            log.info("*********** Loading device - [%d] 加载设备 [%d] 开始 ***********", index, index)
            device = NvDevice(index=index)
            device.name = _nv_attempt(
                lambda: nvml.device_name(index),
                "Unknown",
                "Failed to get device name 获取设备名称失败",
                "This device may not support name feature 本设备可能不支持名称功能",
            )
            device.serial = _nv_attempt(
                lambda: nvml.device_serial(index),
                "Unsupport",
                "Failed to get device serial 获取设备序列号失败",
                "This device may not support serial feature 本设备可能不支持序列号功能",
            )
            device.cuda_version = _nv_attempt(
                nvml.cuda_driver_version,
                -1.0,
                "Failed to get system CUDA driver version 获取系统 CUDA 驱动版本失败",
                "This device may not support CUDA feature 本设备可能不支持 CUDA 功能",
            )
            device.total_memory = _nv_attempt(
                lambda: nvml.memory_info(index).total / _GIB,
                -1.0,
                "Failed to get device Vmemory info 获取设备显存信息失败",
                "This device may not support Vmemory info feature 本设备可能不支持显存信息功能",
            )
            device.driver_version = _nv_attempt(
                lambda: nvml.driver_version(index),
                "Unsupport",
                "Failed to get device driver version 获取设备驱动版本失败",
                "This device may not support driver version feature 本设备可能不支持驱动版本功能",
            )
            device.power_limit = _nv_attempt(
                lambda: nvml.power_limit(index) // 1000,
                0,
                "Failed to get power limit 获取功耗墙失败",
                "This device may not support power limit feature 本设备可能不支持功耗墙功能",
            )
            device.temperature_threshold = _nv_attempt(
                lambda: nvml.temperature_threshold(index),
                0,
                "Failed to get temperature threshold 获取温度墙失败",
                "This device may not support temperature threshold feature 本设备可能不支持温度墙功能",
            )

            def _probe_nvlink() -> bool:
                nvml.nvlink_state(index, 0)
                return True

            supports_nvlink = _nv_attempt(
                _probe_nvlink,
                False,
                "Failed to get NvLink state 获取 NvLink 状态失败",
                "This device may not support NvLink feature 本设备可能不支持 NvLink 功能",
            )
            links: list[NvLink] | str = [] if supports_nvlink else ""
            device.nvlinks = nvml.fill_nvlinks(links, index)

            devices.append(device)
            log.info("*********** Loading device End - [%d] 加载 [%d] 结束 ***********", index, index)

        log.info("\n\n------------------------------- Loading Nvidia Device End 加载 Nvidia 设备结束 ------------------------------------\n\n")

    def log_nvml_info(self) -> None:
        """Write a readable summary of every loaded GPU to the log."""
        devices = self._require_devices("Nvidia Devices not loaded 未加载 Nvidia 设备")
        log.info("\n---------------------------- Worker NVML Info 工作机器 NVML 信息 ----------------------------\n\n")
        for device in devices:
            log.info("\n******************************************************************\n")
            log.info(
                "\nDevice [%d] Information:\n"
                "  Name 设备: %s\n"
                "  Serial 序列号: %s\n"
                "  Driver Version 驱动版本: %s\n"
                "  CUDA Version CUDA 版本: %s\n"
                "  Total VMemory 总显存: %.2f GB\n"
                "  Power Limit 功耗墙: %s W\n"
                "  Temperature Threshold 温度墙: %s °C",
                device.index,
                device.name,
                device.serial,
                device.driver_version,
                device.cuda_version,
                device.total_memory,
                device.power_limit,
                device.temperature_threshold,
            )
            if isinstance(device.nvlinks, str):
                log.info("[✘] NvLink Not Supported 不支持 NvLink")
            else:
                for link in device.nvlinks:
                    log.info(
                        "\n[%d] NvLink Supported 支持 NvLink: %s\nNvLink Version 版本: %s\nNvLink Capability 能力\n%s",
                        link.link,
                        link.is_active,
                        link.version,
                        link.capability,
                    )
            log.info("\n******************************************************************\n")
        log.info("\n--------------------------------- Worker NVML Info End 工作机器 NVML 信息结束 ----------------------------------------")

    def update_gpu_usage(self) -> None:
        """Sample the current usage of every loaded GPU; values that fail become -1.0."""
        devices = self._require_devices(
            "Nvidia Devices not loaded, can not update Nvidia GPU usage! "
            "未加载 Nvidia 设备, 无法更新 Nvidia GPU 使用情况!"
        )
        nvml = self._require_nvml("NVML not initialized 未初始化 NVML")
        for device in devices:
            index = device.index
            usage = device.usage
            usage.gpu_usage = _gpu_value(lambda: float(nvml.utilization_rates(index).gpu))
            usage.gpu_memory_used = _gpu_value(lambda: nvml.memory_info(index).used / _GIB)
            usage.gpu_temperature = _gpu_value(lambda: float(nvml.temperature(index)))
            try:
                clocks = nvml.all_clock_info(index)
                usage.gpu_clock_info = GpuClockInfo(
                    graphics_clock=float(clocks.graphics_clock),
                    sm_clock=float(clocks.sm_clock),
                    mem_clock=float(clocks.mem_clock),
                    video_clock=float(clocks.video_clock),
                )
            except NVMLError:
                usage.gpu_clock_info = GpuClockInfo(-1.0, -1.0, -1.0, -1.0)
            usage.gpu_power_usage = _gpu_value(lambda: nvml.power_usage(index) / 1000.0)

    # ---------------------------- JSON messages ----------------------------

    def usage_json(self) -> dict[str, Any]:
        """The periodic usage report: CPU and memory, plus GPUs when NVML is available."""
        info = get_usage_info_cpu()
        message: dict[str, Any] = {
            "command": "usage",
            "cpuUsage": info.cpu_usage,
            "cpuMemoryUsage": info.memory_usage,
        }
        if self.nvml is not None:
            message["gpuUsage"] = self.usage_gpu_json()
        return message

    def usage_gpu_json(self) -> dict[str, Any]:
        """Fresh usage figures for every GPU, under the ``NVIDIA`` key."""
        self._require_nvml(
            "NVML not initialized NVML, can not get Nvidia GPU usage! 未初始化 NVML, 无法获取 Nvidia GPU 情况!"
        )
        self.update_gpu_usage()
        entries = []
        for device in self.nv_devices or []:
            usage = device.usage
            clocks = usage.gpu_clock_info
            entries.append(
                {
                    "index": device.index,
                    "gpuUsage": usage.gpu_usage,
                    "gpuMemoryUsed": usage.gpu_memory_used,
                    "gpuTemperature": usage.gpu_temperature,
                    "gpuClockInfo": {
                        "graphicsClock": clocks.graphics_clock,
                        "smClock": clocks.sm_clock,
                        "memClock": clocks.mem_clock,
                        "videoClock": clocks.video_clock,
                    },
                    "gpuPowerUsage": usage.gpu_power_usage,
                }
            )
        return {"NVIDIA": entries} if entries else {}

    def machine_info_json(self) -> dict[str, Any]:
        info = self.data.machine_info
        system = info.system_info
        message: dict[str, Any] = {
            "machineName": info.machine_name,
            "systomInfo": {
                "OS": system.os.value,
                "osName": system.os_name,
                "osRelease": system.os_release,
                "osVersion": system.os_version,
                "osArchitecture": system.os_architecture.value,
            },
        }
        if info.devices:
            message["devices"] = [
                {
                    "type": device.type.value,
                    "platformName": device.platform_name,
                    "name": device.name,
                    "cores": device.cores,
                    "memoryGB": device.memory_gb,
                }
                for device in info.devices
            ]
        return message

    @staticmethod
    def _nvlinks_json(links: list[NvLink] | str) -> Any:
        if isinstance(links, str):
            return links
        result = []
        for link in links:
            entry: dict[str, Any] = {"link": link.link, "isNvLinkActive": link.is_active}
            if link.version is not None:
                entry["NvLinkVersion"] = link.version
            if link.capability is not None:
                entry["NvLinkCapability"] = link.capability
            result.append(entry)
        return result

    def nv_device_register_json(self) -> list[dict[str, Any]]:
        """Static description of every loaded GPU."""
        devices = self._require_devices("Nvidia Devices not loaded 未加载 Nvidia 设备")
        return [
            {
                "index": device.index,
                "name": device.name,
                "serial": device.serial,
                "driverVersion": device.driver_version,
                "cudaVersion": device.cuda_version,
                "totalMemery": device.total_memory,
                "PowerLimit": device.power_limit,
                "TemperatureThreshold": device.temperature_threshold,
                "nvLinks": self._nvlinks_json(device.nvlinks),
            }
            for device in devices
        ]

    def register_json(self) -> dict[str, Any]:
        """The message a worker sends to register with the server."""
        worker_info: dict[str, Any] = {"machineInfo": self.machine_info_json()}
        if self.nvml is not None and self.nv_devices:
            worker_info["NVIDIA"] = self.nv_device_register_json()
        return {
            "worker_uuid": str(self.worker_uuid),
            "register_secret": self.data.register_secret,
            "worker_info": worker_info,
        }