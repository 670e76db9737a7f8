"""GPU telemetry — NVML via nvidia-ml-py, with a DRM sysfs fallback.

Backends register themselves in priority order. TelemetrySource opens the
first one that works and sticks with it (or with nothing) for the life of the
process; snapshot() never raises.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod

from ollamon import REGISTRY, TelemetryUnavailable, register
from ollamon.models import DeviceSnapshot

log = logging.getLogger(__name__)

GIB = 1024**3

# NVML_TEMPERATURE_GPU
_NVML_TEMP_GPU = 0


class TelemetryBackend(ABC):
    """One way of reading GPU metrics.

    Lifecycle:
        1. open() probes the system and returns a ready backend, or raises
           TelemetryUnavailable
        2. snapshot() is called once per refresh
        3. close() releases whatever open() acquired
    """

    name: str = ""

    @classmethod
    @abstractmethod
    def open(cls) -> TelemetryBackend:
        """Return a ready backend or raise TelemetryUnavailable."""

    @abstractmethod
    def snapshot(self) -> list[DeviceSnapshot]:
        """Read every device once."""

    def close(self) -> None:
        """Release resources. Called at most once."""


@register
class NvmlBackend(TelemetryBackend):
    """NVIDIA management library. nvmlInit() locates and loads the driver's
    libnvidia-ml / nvml.dll itself."""

    name = "nvml"

    def __init__(self, pynvml, count: int):
        self._pynvml = pynvml
        self._count = count

    @classmethod
    def open(cls) -> NvmlBackend:
        try:
            import pynvml
        except ImportError as exc:
            raise TelemetryUnavailable("nvidia-ml-py is not installed") from exc

        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as exc:
            raise TelemetryUnavailable(f"nvmlInit failed: {exc}") from exc

        try:
            count = pynvml.nvmlDeviceGetCount()
        except pynvml.NVMLError as exc:
            pynvml.nvmlShutdown()
            raise TelemetryUnavailable(f"nvmlDeviceGetCount failed: {exc}") from exc
        if count == 0:
            pynvml.nvmlShutdown()
            raise TelemetryUnavailable("NVML reports no devices")
        return cls(pynvml, count)

    @property
    def device_count(self) -> int:
        return self._count

    def snapshot(self) -> list[DeviceSnapshot]:
        nv = self._pynvml
        devices = []
        for i in range(self._count):
            try:
                handle = nv.nvmlDeviceGetHandleByIndex(i)
            except nv.NVMLError as exc:
                log.debug("nvml: no handle for device %d: %s", i, exc)
                devices.append(DeviceSnapshot(available=False, index=i))
                continue
            fields = {"available": True, "index": i}

            try:
                name = nv.nvmlDeviceGetName(handle)
                fields["name"] = name.decode() if isinstance(name, bytes) else name
            except nv.NVMLError:
                pass

            try:
                mem = nv.nvmlDeviceGetMemoryInfo(handle)
                fields["total_vram_gb"] = mem.total / GIB
                fields["used_vram_gb"] = mem.used / GIB
                fields["free_vram_gb"] = mem.free / GIB
            except nv.NVMLError:
                pass

            try:
                fields["utilization_percent"] = float(nv.nvmlDeviceGetUtilizationRates(handle).gpu)
            except nv.NVMLError:
                pass

            try:
                fields["temperature_c"] = int(nv.nvmlDeviceGetTemperature(handle, _NVML_TEMP_GPU))
            except nv.NVMLError:
                pass

            try:
                fields["power_watts"] = int(nv.nvmlDeviceGetPowerUsage(handle)) // 1000  # mW
            except nv.NVMLError:
                pass

            devices.append(DeviceSnapshot(**fields))
        return devices

    def close(self) -> None:
        try:
            self._pynvml.nvmlShutdown()
        except self._pynvml.NVMLError as exc:
            log.debug("nvmlShutdown failed: %s", exc)


DRM_BASE = "/sys/class/drm"

# (vendor, device) pairs of software / virtual display adapters
SOFTWARE_ADAPTERS = {
    (0x1414, 0x008C),  # Microsoft Basic Render Driver
    (0x1234, 0x1111),  # QEMU / Bochs standard VGA
    (0x80EE, 0xBEEF),  # VirtualBox VGA
    (0x15AD, 0x0405),  # VMware SVGA II
}

VENDOR_NAMES = {
    0x10DE: "NVIDIA",
    0x1002: "AMD",
    0x8086: "Intel",
    0x1414: "Microsoft",
}


@register
class DrmBackend(TelemetryBackend):
    """Display adapter enumeration through /sys/class/drm.

    Only the adapter name and dedicated memory size are known here; usage,
    utilization, temperature and power stay at zero.
    """

    name = "drm"

    def __init__(self, adapters: list[tuple[str, float]]):
        self._adapters = adapters

    @classmethod
    def open(cls, base: str = DRM_BASE) -> DrmBackend:
        adapters = cls._enumerate(base)
        if not adapters:
            raise TelemetryUnavailable(f"no display adapters under {base}")
        return cls(adapters)

    def snapshot(self) -> list[DeviceSnapshot]:
        return [
            DeviceSnapshot(available=True, index=i, name=name,
                           total_vram_gb=total_gb, free_vram_gb=total_gb)
            for i, (name, total_gb) in enumerate(self._adapters)
        ]

    @staticmethod
    def _enumerate(base: str) -> list[tuple[str, float]]:
        """Scan cardN/device entries → [(name, total_vram_gb)] in card order."""
        try:
            entries = os.listdir(base)
        except OSError:
            return []

        cards = []
        for entry in entries:
            # card0 is an adapter, card0-HDMI-A-1 is one of its connectors
            if entry.startswith("card") and entry[4:].isdigit():
                cards.append((int(entry[4:]), entry))
        cards.sort()

        adapters = []
        for _, card in cards:
            device_dir = os.path.join(base, card, "device")
            vendor = _read_hex(os.path.join(device_dir, "vendor"))
            device = _read_hex(os.path.join(device_dir, "device"))
            if vendor is None:
                continue
            if (vendor, device) in SOFTWARE_ADAPTERS:
                log.debug("drm: skipping software adapter %s (%04x:%04x)", card, vendor, device or 0)
                continue

            name = _read_text(os.path.join(device_dir, "product_name"))
            if not name:
                vendor_name = VENDOR_NAMES.get(vendor, "Unknown")
                name = f"{vendor_name} GPU [{vendor:04x}:{device or 0:04x}]"

            total = _read_text(os.path.join(device_dir, "mem_info_vram_total"))
            total_gb = int(total) / GIB if total.isdigit() else 0.0
            adapters.append((name, total_gb))
        return adapters


def _read_text(path: str) -> str:
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return ""


def _read_hex(path: str) -> int | None:
    raw = _read_text(path)
    try:
        return int(raw, 16)
    except ValueError:
        return None


class TelemetrySource:
    """Owns the active backend (if any) for the lifetime of the process."""

    def __init__(self, backends: list[type[TelemetryBackend]] | None = None):
        self._candidates = list(REGISTRY.values()) if backends is None else list(backends)
        self._backend: TelemetryBackend | None = None
        self._opened = False
        self._closed = False

    @property
    def backend_name(self) -> str | None:
        return self._backend.name if self._backend else None

    @property
    def available(self) -> bool:
        return self._backend is not None

    def open(self) -> TelemetrySource:
        """Pick the first backend that opens. Failure is permanent."""
        if self._opened:
            return self
        self._opened = True
        for cls in self._candidates:
            try:
                self._backend = cls.open()
            except TelemetryUnavailable as exc:
                log.info("telemetry backend %s unavailable: %s", cls.name, exc)
                continue
            log.info("telemetry backend: %s", cls.name)
            break
        else:
            log.info("no telemetry backend available")
        return self

    def snapshot(self) -> list[DeviceSnapshot]:
        if self._backend is None or self._closed:
            return []
        try:
            return self._backend.snapshot()
        except Exception:
            log.exception("telemetry snapshot failed")
            return []

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._backend is not None:
            self._backend.close()

    def __enter__(self) -> TelemetrySource:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
