"""
ServiceController - Manages systemd service operations.

Provides:
- Start/stop/enable/disable/restart (systemctl)
- Reload with restart fallback
- Bounded readiness wait (ensure_running)
- Log retrieval (journalctl)
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..protocol.errors import ActivationFailed, ServiceUnready
from .command import CommandRunner, CommandResult
from .paths import SYSTEMD_UNIT_DIRS, host_path


@dataclass
class ServiceConfig:
    """Configuration for service controller."""
    probe_interval: int = 2  # seconds
    max_wait: int = 60  # seconds
    log_lines: int = 20


def _unit(name: str) -> str:
    return name if "." in name else f"{name}.service"


class ServiceController:
    """
    Controls systemd units through an injected CommandRunner.

    `sleep` and `clock` are injectable so the readiness poll can be
    driven without real waiting.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        config: Optional[ServiceConfig] = None,
        root: Union[str, Path] = "/",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runner = runner or CommandRunner()
        self.config = config or ServiceConfig()
        self.root = Path(root)
        self._sleep = sleep
        self._clock = clock

    def _systemctl(self, *args: str) -> CommandResult:
        return self.runner.run(["systemctl", *args])

    # =========================================================================
    # Queries
    # =========================================================================

    def status(self, name: str) -> str:
        """Get service status (`systemctl is-active` output)."""
        result = self._systemctl("is-active", name)
        return result.stdout.strip() or "unknown"

    def is_active(self, name: str) -> bool:
        return self.status(name) == "active"

    def is_enabled(self, name: str) -> bool:
        return self._systemctl("is-enabled", name).ok

    def unit_exists(self, name: str) -> bool:
        """Check whether a unit file is installed."""
        unit = _unit(name)
        for directory in SYSTEMD_UNIT_DIRS:
            if host_path(self.root, f"{directory}/{unit}").exists():
                return True
        return self._systemctl("cat", unit).ok

    def get_tail_logs(self, name: str, lines: Optional[int] = None) -> List[str]:
        """
        Get recent service logs from journalctl.

        Args:
            name: Service name
            lines: Number of log lines to retrieve

        Returns:
            List of log lines
        """
        lines = lines or self.config.log_lines
        result = self.runner.run(["journalctl", "-u", name, "-n", str(lines), "--no-pager"])
        if not result.ok or not result.stdout.strip():
            return []
        return result.stdout.strip().split("\n")

    # =========================================================================
    # Actions
    # =========================================================================

    def start(self, name: str) -> bool:
        return self._systemctl("start", name).ok

    def stop(self, name: str) -> bool:
        return self._systemctl("stop", name).ok

    def restart(self, name: str) -> bool:
        return self._systemctl("restart", name).ok

    def enable(self, name: str) -> bool:
        return self._systemctl("enable", name).ok

    def disable(self, name: str) -> bool:
        return self._systemctl("disable", name).ok

    def daemon_reload(self) -> bool:
        """Reload systemd after unit file changes."""
        return self._systemctl("daemon-reload").ok

    def reload(self, name: str) -> None:
        """
        Reload configuration without dropping connections.

        Falls back to a full restart when the unit cannot reload.

        Raises:
            ActivationFailed: if neither reload nor restart succeeds
        """
        if self._systemctl("reload", name).ok:
            return
        result = self._systemctl("restart", name)
        if not result.ok:
            raise ActivationFailed(
                f"Reload and restart of {name} failed",
                details=result.tail() + self.get_tail_logs(name),
            )

    def ensure_running(
        self,
        name: str,
        readiness: Callable[[], bool],
        max_wait: Optional[float] = None,
    ) -> bool:
        """
        Make sure a service is running and ready.

        An already-active, already-ready service costs one status query
        and one readiness call.

        Args:
            name: Service name
            readiness: Returns True once the service is usable
            max_wait: Seconds to wait for readiness

        Returns:
            True if the service had to be started

        Raises:
            ActivationFailed: enable or start returned non-zero
            ServiceUnready: readiness not reached within max_wait
        """
        if self.status(name) == "active" and readiness():
            return False

        for action in ("enable", "start"):
            result = self._systemctl(action, name)
            if not result.ok:
                raise ActivationFailed(
                    f"systemctl {action} {name} failed",
                    details=result.tail() + self.get_tail_logs(name),
                )

        max_wait = self.config.max_wait if max_wait is None else max_wait
        deadline = self._clock() + max_wait

        while True:
            if readiness():
                return True
            if self._clock() >= deadline:
                break
            self._sleep(self.config.probe_interval)

        last_status = self.status(name)
        raise ServiceUnready(
            f"{name} not ready after {max_wait}s (status: {last_status})",
            last_status=last_status,
            details=self.get_tail_logs(name),
        )
