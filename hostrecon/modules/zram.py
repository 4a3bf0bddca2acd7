"""Compressed swap in RAM via zram-tools."""

from typing import Dict, List

from ..host.paths import ZRAM_SYSCTL_CONF, ZRAMSWAP_DEFAULTS
from ..host.probe import ProbeKey
from ..protocol.errors import CapabilityUnsupported
from ..protocol.result import ProbeResult
from .base import Module

SERVICE = "zramswap"

# Used when /proc/meminfo cannot be read
FALLBACK_PERCENT = 50


def memory_percent(mem_mb: int, cores: int) -> int:
    """
    zram size as a percent of RAM for a host of this size.

    Small hosts get proportionally more compressed swap; above 4 GiB
    hosts with at least four cores get the smaller share.
    """
    if mem_mb < 1024:
        return 200
    if mem_mb < 2048:
        return 150
    if mem_mb < 4096:
        return 100
    return 60 if cores >= 4 else 80


class ZramModule(Module):
    name = "zram"
    description = "zstd-compressed swap in RAM with swap-friendly vm settings"
    marker = "ZRAM"
    files = (ZRAMSWAP_DEFAULTS, ZRAM_SYSCTL_CONF)
    services = (SERVICE,)
    packages = ("zram-tools",)
    runtime_keys = (
        "vm.swappiness",
        "vm.vfs_cache_pressure",
        "vm.dirty_ratio",
        "vm.dirty_background_ratio",
        "vm.page-cluster",
    )

    @property
    def settings(self):
        return self.ctx.config.zram

    def percent(self) -> int:
        """Configured percent, or one sized from installed memory."""
        if self.settings.percent is not None:
            return self.settings.percent
        probe = self.ctx.probe
        mem_mb, ok = probe.probe(ProbeKey.MEM_TOTAL_MB)
        if not ok:
            return FALLBACK_PERCENT
        cores, ok = probe.probe(ProbeKey.CPU_CORES)
        return memory_percent(int(mem_mb), int(cores) if ok else 1)

    def check_capabilities(self, notes: List[str]) -> None:
        _, ok = self.ctx.probe.probe(ProbeKey.ZRAM_SUPPORTED)
        if not ok:
            raise CapabilityUnsupported("Kernel has no zram support (zram module cannot be loaded)")

    def blocks(self) -> Dict[str, str]:
        s = self.settings
        defaults = "\n".join([
            f"ALGO={s.algorithm}",
            f"PERCENT={self.percent()}",
            f"PRIORITY={s.priority}",
        ])
        vm = "\n".join([
            f"vm.swappiness = {s.swappiness}",
            "vm.vfs_cache_pressure = 50",
            "vm.dirty_ratio = 15",
            "vm.dirty_background_ratio = 5",
            "vm.page-cluster = 0",
        ])
        return {ZRAMSWAP_DEFAULTS: defaults, ZRAM_SYSCTL_CONF: vm}

    def expectations(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        return [
            probe.check(ProbeKey.ZRAM_ACTIVE, "yes"),
            probe.check(ProbeKey.ZRAM_ALGORITHM, self.settings.algorithm),
            probe.check(ProbeKey.SWAPPINESS, str(self.settings.swappiness)),
        ]

    def _zram_active(self) -> bool:
        value, _ = self.ctx.probe.probe(ProbeKey.ZRAM_ACTIVE)
        return value == "yes"

    def activate(self, notes: List[str]) -> None:
        self.require(self.ctx.sysctl_load(ZRAM_SYSCTL_CONF), "sysctl -e -p")

        services = self.ctx.services
        # a running zramswap only picks up ALGO/PERCENT on restart
        if services.is_active(SERVICE) and not services.restart(SERVICE):
            notes.append(f"restart of {SERVICE} failed; retrying start")
        services.ensure_running(SERVICE, self._zram_active, self.settings.max_wait)
