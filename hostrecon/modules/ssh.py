"""
SSH hardening through an sshd_config.d drop-in.

sshd keeps the first value it reads for most keywords, and the stock
sshd_config includes sshd_config.d/*.conf at the top, so a drop-in
overrides the main file without editing it.
"""

from typing import Dict, List

from ..host.backup import BackupKind
from ..host.paths import SSHD_DROPIN
from ..host.probe import ProbeKey
from ..protocol.errors import ActivationFailed, CapabilityUnsupported
from ..protocol.result import ProbeResult
from .base import Module

HARDENING = [
    ("PermitEmptyPasswords", "no"),
    ("PubkeyAuthentication", "yes"),
    ("MaxAuthTries", "3"),
    ("LoginGraceTime", "60"),
    ("ClientAliveInterval", "300"),
    ("ClientAliveCountMax", "2"),
    ("AllowAgentForwarding", "no"),
    ("AllowTcpForwarding", "no"),
    ("X11Forwarding", "no"),
    ("UseDNS", "no"),
]


class SshModule(Module):
    name = "ssh-security"
    description = "sshd port, root login policy, key-only auth when keys exist"
    marker = "SSH Security"
    files = (SSHD_DROPIN,)

    @property
    def settings(self):
        return self.ctx.config.ssh

    def service_name(self) -> str:
        """Debian/Ubuntu call the unit ssh, RHEL-likes call it sshd."""
        return "ssh" if self.ctx.services.unit_exists("ssh") else "sshd"

    def authorized_key_count(self) -> int:
        value, _ = self.ctx.probe.probe(ProbeKey.SSH_AUTHORIZED_KEYS)
        return int(value or 0)

    def password_authentication(self) -> str:
        mode = self.settings.password_authentication
        if mode == "auto":
            return "no" if self.authorized_key_count() > 0 else "yes"
        return mode

    def check_capabilities(self, notes: List[str]) -> None:
        probe = self.ctx.probe
        port = self.settings.port

        if not probe.probe(ProbeKey.SSHD_AVAILABLE)[1]:
            raise CapabilityUnsupported("sshd is not installed")

        included, ok = probe.probe(ProbeKey.SSH_DROPIN_INCLUDED)
        if not ok or included != "yes":
            raise CapabilityUnsupported(
                "sshd_config does not Include sshd_config.d/*.conf; a drop-in would be ignored"
            )

        if not 1024 <= port <= 65535:
            raise CapabilityUnsupported(f"SSH port {port} outside 1024-65535")

        current, _ = probe.probe(ProbeKey.SSH_PORT)
        current_ports = (current or "").split()
        listening, _ = probe.probe(ProbeKey.LISTENING_PORTS)
        if str(port) not in current_ports and str(port) in (listening or "").split():
            raise CapabilityUnsupported(f"Port {port} is already in use by another service")

        if self.settings.password_authentication == "no" and self.authorized_key_count() == 0:
            raise CapabilityUnsupported(
                "Refusing to disable password login: no keys in /root/.ssh/authorized_keys"
            )
        if self.password_authentication() == "yes" and self.settings.password_authentication == "auto":
            notes.append("no authorized keys found; password login left enabled")

    def blocks(self) -> Dict[str, str]:
        lines = [
            f"Port {self.settings.port}",
            f"PermitRootLogin {self.settings.permit_root_login}",
            f"PasswordAuthentication {self.password_authentication()}",
        ]
        lines.extend(f"{keyword} {value}" for keyword, value in HARDENING)
        return {SSHD_DROPIN: "\n".join(lines)}

    def expectations(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        return [
            probe.check(ProbeKey.SSH_PORT, str(self.settings.port)),
            probe.check(ProbeKey.SSH_PERMIT_ROOT_LOGIN, self.settings.permit_root_login),
            probe.check(ProbeKey.SSH_PASSWORD_AUTHENTICATION, self.password_authentication()),
        ]

    def status_probes(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        return self.expectations() + [
            probe.check(ProbeKey.SSH_DROPIN_INCLUDED, "yes"),
            probe.check(ProbeKey.SSH_AUTHORIZED_KEYS),
        ]

    def _validate(self) -> None:
        result = self.ctx.runner.run(["sshd", "-t"])
        if not result.ok:
            raise ActivationFailed("sshd -t rejected the configuration", details=result.tail())

    def activate(self, notes: List[str]) -> None:
        try:
            self._validate()
        except ActivationFailed:
            self.ctx.backups.restore(SSHD_DROPIN, BackupKind.LAST_BACKUP)
            notes.append(f"restored {SSHD_DROPIN} from last backup")
            raise
        self.ctx.services.reload(self.service_name())

    def deactivate(self, notes: List[str]) -> None:
        # sshd keeps running; it only needs to re-read the restored config
        self._validate()
        self.ctx.services.reload(self.service_name())
