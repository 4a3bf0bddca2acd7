"""Replace systemd-timesyncd with chrony, optionally pinning the timezone."""

from typing import Dict, List

from ..host.command import CommandResult
from ..host.paths import CHRONY_DROPIN
from ..host.probe import ProbeKey
from ..protocol.result import ProbeResult
from .base import Module

SERVICE = "chrony"
TIMESYNCD = "systemd-timesyncd"
TIMEZONE_SNAPSHOT = "time-sync.timezone"


class TimeSyncModule(Module):
    name = "time-sync"
    description = "chrony time synchronisation in place of systemd-timesyncd"
    marker = "Time Sync"
    files = (CHRONY_DROPIN,)
    services = (SERVICE,)
    packages = ("chrony",)

    @property
    def settings(self):
        return self.ctx.config.time_sync

    def blocks(self) -> Dict[str, str]:
        lines = [f"pool {pool} iburst" for pool in self.settings.pools]
        lines.append(f"makestep {self.settings.makestep}")
        return {CHRONY_DROPIN: "\n".join(lines)}

    def expectations(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        probes = [
            probe.check(ProbeKey.CHRONY_ACTIVE, "active"),
            probe.check(ProbeKey.NTP_SYNCHRONIZED, "yes", advisory=True),
        ]
        if self.settings.timezone:
            probes.append(probe.check(ProbeKey.TIMEZONE, self.settings.timezone))
        return probes

    def _chrony_active(self) -> bool:
        return self.ctx.services.is_active(SERVICE)

    def _set_timezone(self, zone: str) -> CommandResult:
        return self.ctx.runner.run(["timedatectl", "set-timezone", zone])

    def activate(self, notes: List[str]) -> None:
        zone = self.settings.timezone
        if zone:
            current, _ = self.ctx.probe.probe(ProbeKey.TIMEZONE)
            self.ctx.snapshots.capture_once(TIMEZONE_SNAPSHOT, {"timezone": current})
            if current != zone:
                self.require(self._set_timezone(zone), f"timedatectl set-timezone {zone}")
                notes.append(f"timezone {current or 'unknown'} -> {zone}")

        services = self.ctx.services
        if services.unit_exists(TIMESYNCD):
            services.stop(TIMESYNCD)
            services.disable(TIMESYNCD)

        if services.is_active(SERVICE) and not services.restart(SERVICE):
            notes.append(f"restart of {SERVICE} failed; retrying start")
        services.ensure_running(SERVICE, self._chrony_active, self.settings.max_wait)

    def deactivate(self, notes: List[str]) -> None:
        services = self.ctx.services
        if services.unit_exists(TIMESYNCD):
            if not services.enable(TIMESYNCD):
                notes.append(f"could not enable {TIMESYNCD}")
            if not services.start(TIMESYNCD):
                notes.append(f"could not start {TIMESYNCD}")

        saved = (self.ctx.snapshots.load(TIMEZONE_SNAPSHOT) or {}).get("timezone")
        if saved:
            current, _ = self.ctx.probe.probe(ProbeKey.TIMEZONE)
            if current != saved and not self._set_timezone(saved).ok:
                notes.append(f"could not restore timezone {saved}")
