import pytest

from ylineworker.nvml import (
    NVML_TEMPERATURE_THRESHOLD_GPU_MAX,
    UNSUPPORTED,
    ClockInfo,
    ClockType,
    MemoryInfo,
    NVMLError,
    Nvml,
    NvLink,
    Utilization,
)

NOT_FOUND = 6
NOT_SUPPORTED = 3


class FakeBackend:
    def __init__(self, devices=1, links=0, capability=1):
        self.devices = devices
        self.links = links
        self.capability = capability
        self.init_calls = 0
        self.shutdown_calls = 0
        self.threshold_args = []

    def init(self):
        self.init_calls += 1
        return 0

    def shutdown(self):
        self.shutdown_calls += 1
        return 0

    def error_string(self, code):
        return {NOT_FOUND: "Not Found", NOT_SUPPORTED: "Not Supported"}.get(code, "Unknown")

    def device_get_count(self):
        return 0, self.devices

    def device_get_handle_by_index(self, index):
        if index >= self.devices:
            return NOT_FOUND, None
        return 0, f"handle-{index}"

    def device_get_name(self, handle):
        return 0, f"GPU {handle}"

    def device_get_serial(self, handle):
        return NOT_SUPPORTED, None

    def system_get_driver_version(self):
        return 0, "550.00"

    def device_get_enforced_power_limit(self, handle):
        return 0, 250000

    def device_get_temperature_threshold(self, handle, threshold):
        self.threshold_args.append(threshold)
        return 0, 90

    def device_get_nvlink_state(self, handle, link):
        if link >= self.links:
            return NOT_SUPPORTED, None
        return 0, 1

    def device_get_nvlink_version(self, handle, link):
        return 0, 4

    def device_get_nvlink_capability(self, handle, link, cap):
        return 0, self.capability

    def device_get_utilization_rates(self, handle):
        return 0, Utilization(gpu=40, memory=20)

    def device_get_temperature(self, handle, sensor):
        return 0, 55

    def device_get_fan_speed(self, handle, fan):
        return 0, 30 + fan

    def device_get_num_fans(self, handle):
        return 0, 2

    def device_get_clock_info(self, handle, clock_type):
        return 0, {0: 1500, 1: 1400, 2: 7000, 3: 1200}[clock_type]

    def device_get_power_usage(self, handle):
        return 0, 120000

    def system_get_cuda_driver_version(self):
        return 0, 12040

    def device_get_memory_info(self, handle):
        return 0, MemoryInfo(total=8 * 1024**3, free=6 * 1024**3, used=2 * 1024**3)


def test_missing_backend_raises():
    with pytest.raises(NVMLError, match="Failed to load library"):
        Nvml(None)


def test_missing_call_raises():
    class Partial:
        def init(self):
            return 0

    with pytest.raises(NVMLError, match="Failed to load function"):
        Nvml(Partial())


def test_init_and_shutdown_once():
    backend = FakeBackend()
    with Nvml(backend) as nvml:
        assert backend.init_calls == 1
        nvml.close()
    assert backend.shutdown_calls == 1


def test_calls_after_close_raise():
    nvml = Nvml(FakeBackend())
    nvml.close()
    with pytest.raises(NVMLError):
        nvml.device_count()


def test_check_result_message():
    nvml = Nvml(FakeBackend())
    with pytest.raises(NVMLError, match="Failed to execute NVML device query: Not Supported"):
        nvml.check_result(NOT_SUPPORTED)


def test_basic_queries():
    nvml = Nvml(FakeBackend(devices=2))
    assert nvml.device_count() == 2
    assert nvml.device_name(1) == "GPU handle-1"
    assert nvml.driver_version(0) == "550.00"
    assert nvml.power_limit(0) == 250000
    assert nvml.temperature(0) == 55
    assert nvml.power_usage(0) == 120000
    assert nvml.fan_count(0) == 2
    assert nvml.fan_speed(0, 1) == 31


def test_invalid_index_raises():
    nvml = Nvml(FakeBackend(devices=1))
    with pytest.raises(NVMLError, match="Not Found"):
        nvml.device_name(3)
    with pytest.raises(NVMLError):
        nvml.driver_version(3)


def test_unsupported_serial_raises():
    nvml = Nvml(FakeBackend())
    with pytest.raises(NVMLError, match="Not Supported"):
        nvml.device_serial(0)


def test_temperature_threshold_uses_gpu_max():
    backend = FakeBackend()
    nvml = Nvml(backend)
    assert nvml.temperature_threshold(0) == 90
    assert backend.threshold_args == [NVML_TEMPERATURE_THRESHOLD_GPU_MAX]


def test_cuda_driver_version():
    assert Nvml(FakeBackend()).cuda_driver_version() == pytest.approx(12.4)


def test_all_clock_info():
    nvml = Nvml(FakeBackend())
    assert nvml.all_clock_info(0) == ClockInfo(1500, 1400, 7000, 1200)
    assert nvml.clock_info(0, ClockType.MEM) == 7000


def test_utilization_and_memory():
    nvml = Nvml(FakeBackend())
    assert nvml.utilization_rates(0) == Utilization(gpu=40, memory=20)
    info = nvml.memory_info(0)
    assert info.total == info.free + info.used


def test_nvlink_capability_supported():
    text = Nvml(FakeBackend(links=1, capability=1)).nvlink_capability(0, 0)
    lines = text.splitlines()
    assert len(lines) == 6
    assert lines[0] == "[✔] P2P over NVLink is supported"
    assert lines[-1] == "[✔] NVLink is valid"


def test_nvlink_capability_unsupported():
    text = Nvml(FakeBackend(links=1, capability=0)).nvlink_capability(0, 0)
    assert all(line.startswith("[✘]") for line in text.splitlines())
    assert "[✘] SLI Bridge is not supported\n" in text


def test_fill_nvlinks_stops_at_first_failure():
    nvml = Nvml(FakeBackend(links=2))
    links = []
    result = nvml.fill_nvlinks(links, 0)
    assert result is links
    assert [link.link for link in links] == [0, 1]
    assert all(link.is_active and link.version == 4 for link in links)
    assert isinstance(links[0], NvLink)


def test_fill_nvlinks_string_is_unsupported():
    nvml = Nvml(FakeBackend(links=2))
    assert nvml.fill_nvlinks("", 0) == UNSUPPORTED


def test_nvlink_state():
    nvml = Nvml(FakeBackend(links=1))
    assert nvml.nvlink_state(0, 0) is True
    with pytest.raises(NVMLError):
        nvml.nvlink_state(0, 1)