"""Cross-distro package installation with idempotent operations."""

from enum import Enum
from typing import List, Optional, Sequence

from ..protocol.errors import DependencyFailed
from .command import CommandRunner


class PackageManager(str, Enum):
    APT = "apt-get"
    DNF = "dnf"
    YUM = "yum"


INSTALL_COMMANDS = {
    PackageManager.APT: ["apt-get", "install", "-y"],
    PackageManager.DNF: ["dnf", "install", "-y"],
    PackageManager.YUM: ["yum", "install", "-y"],
}

CHECK_COMMANDS = {
    PackageManager.APT: ["dpkg", "-s"],
    PackageManager.DNF: ["rpm", "-q"],
    PackageManager.YUM: ["rpm", "-q"],
}


class PackageInstaller:
    """
    Installs missing packages through the host package manager.

    Installs are never undone on revert.
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()
        self._manager: Optional[PackageManager] = None
        self._apt_updated = False

    def detect(self) -> Optional[PackageManager]:
        """Detect the system's package manager."""
        if self._manager is None:
            for pm in PackageManager:
                if self.runner.which(pm.value):
                    self._manager = pm
                    break
        return self._manager

    def is_installed(self, package: str) -> bool:
        pm = self.detect()
        if pm is None:
            return False
        return self.runner.run(CHECK_COMMANDS[pm] + [package]).ok

    def ensure(self, packages: Sequence[str]) -> List[str]:
        """
        Idempotently ensure packages are installed.

        Returns:
            List of packages that were newly installed

        Raises:
            DependencyFailed: no package manager, or the install failed
        """
        missing = [p for p in packages if not self.is_installed(p)]
        if not missing:
            return []

        pm = self.detect()
        if pm is None:
            raise DependencyFailed(
                f"No supported package manager to install: {', '.join(missing)}"
            )

        # Refresh apt lists once per run
        if pm == PackageManager.APT and not self._apt_updated:
            self.runner.run(["apt-get", "update", "-qq"])
            self._apt_updated = True

        result = self.runner.run(INSTALL_COMMANDS[pm] + missing, timeout=600)
        if not result.ok:
            raise DependencyFailed(
                f"Failed to install {', '.join(missing)}",
                details=result.tail(),
            )
        return missing
