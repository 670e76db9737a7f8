"""Immutable snapshot records — one set is built per refresh and then dropped."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class DeviceSnapshot:
    """One GPU reading. Sizes are GiB, power is whole watts."""
    available: bool = False
    index: int = 0
    name: str = ""
    total_vram_gb: float = 0.0
    used_vram_gb: float = 0.0
    free_vram_gb: float = 0.0
    utilization_percent: float = 0.0
    temperature_c: int = 0
    power_watts: int = 0

    @property
    def vram_usage_percent(self) -> float:
        if self.total_vram_gb > 0:
            return (self.used_vram_gb / self.total_vram_gb) * 100.0
        return 0.0


@dataclass(frozen=True, slots=True)
class LoadedModelRecord:
    """A model currently resident in the server (from /api/ps)."""
    name: str
    model_id: str = ""
    digest: str = ""
    expires_at: str = ""
    size_bytes: int = 0
    parent_model: str = ""
    format: str = ""
    family: str = ""
    families: tuple[str, ...] = ()
    parameter_size: str = ""
    quantization_level: str = ""


@dataclass(frozen=True, slots=True)
class InstalledModelRecord:
    """A model known to the server catalog (from /api/tags)."""
    name: str
    model_id: str = ""
    digest: str = ""
    modified_at: str = ""
    size_bytes: int = 0


@dataclass(frozen=True, slots=True)
class ServiceSnapshot:
    """Either unreachable, or reachable with the (possibly empty) loaded list."""
    reachable: bool
    loaded: tuple[LoadedModelRecord, ...] = ()

    @classmethod
    def unreachable(cls) -> ServiceSnapshot:
        return cls(reachable=False)

    @classmethod
    def reachable_with(cls, loaded) -> ServiceSnapshot:
        return cls(reachable=True, loaded=tuple(loaded))


@dataclass(frozen=True, slots=True)
class Frame:
    """Everything one render pass needs."""
    devices: tuple[DeviceSnapshot, ...]
    service: ServiceSnapshot
    catalog: tuple[InstalledModelRecord, ...] = ()
    captured_at: datetime = field(default_factory=lambda: datetime.now().astimezone())
