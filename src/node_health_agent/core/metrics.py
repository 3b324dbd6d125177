"""Host resource sampling."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import psutil

_GB = 1024**3


class MetricsProvider(Protocol):
    def total_ram_gb(self) -> float: ...

    def current_ram_usage_percent(self) -> float: ...

    def current_cpu_usage_percent(self, sample_interval: float = 0.2) -> float: ...

    def total_disk_gb(self, mount: str = "/") -> int: ...

    def current_disk_usage_percent(self, mount: str = "/") -> float: ...


class PsutilMetrics:
    """MetricsProvider backed by psutil."""

    def total_ram_gb(self) -> float:
        return round(psutil.virtual_memory().total / _GB, 2)

    def current_ram_usage_percent(self) -> float:
        mem = psutil.virtual_memory()
        return round((mem.total - mem.available) * 100.0 / mem.total, 2)

    def current_cpu_usage_percent(self, sample_interval: float = 0.2) -> float:
        # Blocks for sample_interval between the two CPU-time samples.
        return round(psutil.cpu_percent(interval=sample_interval), 2)

    def total_disk_gb(self, mount: str = "/") -> int:
        return int(psutil.disk_usage(mount).total // _GB)

    def current_disk_usage_percent(self, mount: str = "/") -> float:
        return round(psutil.disk_usage(mount).percent, 2)


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    total_ram_gb: float = 0.0
    total_disk_gb: int = 0
    current_ram_usage: float = 0.0
    current_disk_usage: float = 0.0
    current_cpu_usage: float = 0.0


def sample(
    provider: MetricsProvider, *, mount: str = "/", cpu_interval: float = 0.2
) -> MetricsSnapshot:
    return MetricsSnapshot(
        total_ram_gb=provider.total_ram_gb(),
        total_disk_gb=provider.total_disk_gb(mount),
        current_ram_usage=provider.current_ram_usage_percent(),
        current_disk_usage=provider.current_disk_usage_percent(mount),
        current_cpu_usage=provider.current_cpu_usage_percent(cpu_interval),
    )


async def gather_metrics(
    provider: MetricsProvider, *, mount: str = "/", cpu_interval: float = 0.2
) -> MetricsSnapshot:
    """Sample off the event loop (CPU sampling sleeps)."""
    return await asyncio.to_thread(sample, provider, mount=mount, cpu_interval=cpu_interval)
