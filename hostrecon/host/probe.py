"""
CapabilityProbe - Read-only inspection of kernel, module and file state.

Every probe is keyed by a ProbeKey and returns (value, ok):
- ok=False: the probe target does not exist on this host (unsupported)
- ok=True, value: the observed value (possibly "no"/"0" for disabled)

A kernel module loaded only to test availability is unloaded again
before the probe returns.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..protocol.result import ProbeResult
from .command import CommandRunner
from .paths import (
    ETC_TIMEZONE,
    PROC_CPUINFO,
    PROC_MEMINFO,
    PROC_NET_TCP,
    PROC_SWAPS,
    ROOT_AUTHORIZED_KEYS,
    SSHD_CONFIG,
    SYS_MODULE_ZRAM,
    SYS_ZRAM0,
    host_path,
    sysctl_path,
)


class ProbeKey(str, Enum):
    """Enumerated probe keys."""
    TCP_CONGESTION_CONTROL = "tcp_congestion_control"
    TCP_AVAILABLE_CONGESTION_CONTROL = "tcp_available_congestion_control"
    BBR_AVAILABLE = "bbr_available"
    DEFAULT_QDISC = "default_qdisc"
    TCP_FASTOPEN = "tcp_fastopen"
    MPTCP_ENABLED = "mptcp_enabled"
    SWAPPINESS = "swappiness"
    ZRAM_SUPPORTED = "zram_supported"
    ZRAM_ACTIVE = "zram_active"
    ZRAM_ALGORITHM = "zram_algorithm"
    KERNEL_RELEASE = "kernel_release"
    SSHD_AVAILABLE = "sshd_available"
    SSH_PORT = "ssh_port"
    SSH_PASSWORD_AUTHENTICATION = "ssh_password_authentication"
    SSH_PERMIT_ROOT_LOGIN = "ssh_permit_root_login"
    SSH_DROPIN_INCLUDED = "ssh_dropin_included"
    SSH_AUTHORIZED_KEYS = "ssh_authorized_keys"
    LISTENING_PORTS = "listening_ports"
    DNS_FORWARDER_BINARY = "dns_forwarder_binary"
    DNS_FORWARDER_LISTENING = "dns_forwarder_listening"
    CHRONY_ACTIVE = "chrony_active"
    NTP_SYNCHRONIZED = "ntp_synchronized"
    TIMEZONE = "timezone"
    MEM_TOTAL_MB = "mem_total_mb"
    CPU_CORES = "cpu_cores"


# Plain sysctl-backed probes
SYSCTL_KEYS: Dict[ProbeKey, str] = {
    ProbeKey.TCP_CONGESTION_CONTROL: "net.ipv4.tcp_congestion_control",
    ProbeKey.TCP_AVAILABLE_CONGESTION_CONTROL: "net.ipv4.tcp_available_congestion_control",
    ProbeKey.DEFAULT_QDISC: "net.core.default_qdisc",
    ProbeKey.TCP_FASTOPEN: "net.ipv4.tcp_fastopen",
    ProbeKey.MPTCP_ENABLED: "net.mptcp.enabled",
    ProbeKey.SWAPPINESS: "vm.swappiness",
    ProbeKey.KERNEL_RELEASE: "kernel.osrelease",
}

# `sshd -T` keywords for the ssh probes
SSHD_KEYWORDS: Dict[ProbeKey, str] = {
    ProbeKey.SSH_PORT: "port",
    ProbeKey.SSH_PASSWORD_AUTHENTICATION: "passwordauthentication",
    ProbeKey.SSH_PERMIT_ROOT_LOGIN: "permitrootlogin",
}

TCP_LISTEN = "0A"
KEY_PREFIXES = ("ssh-", "ecdsa-", "sk-ssh-", "sk-ecdsa-")


@dataclass
class ProbeConfig:
    """Configuration for host probing."""
    root: Path = Path("/")
    dns_binary: str = "/usr/local/bin/mosdns-x"
    dns_listen: str = "127.0.0.1:5533"
    chrony_service: str = "chrony"


class CapabilityProbe:
    """
    Read-only host inspection.

    Supports:
    - /proc/sys parameters
    - sysfs and /proc file checks
    - command-backed checks (sshd -T, systemctl is-active)
    """

    def __init__(self, runner: Optional[CommandRunner] = None, config: Optional[ProbeConfig] = None):
        self.runner = runner or CommandRunner()
        self.config = config or ProbeConfig()

    # =========================================================================
    # Public API
    # =========================================================================

    def probe(self, key: ProbeKey) -> Tuple[Optional[str], bool]:
        """Observe the current value for a probe key."""
        key = ProbeKey(key)

        if key in SYSCTL_KEYS:
            value = self.sysctl(SYSCTL_KEYS[key])
            return value, value is not None

        if key in SSHD_KEYWORDS:
            return self._sshd_effective(SSHD_KEYWORDS[key])

        handler = getattr(self, f"_probe_{key.value}")
        return handler()

    def check(
        self,
        key: ProbeKey,
        expected: Optional[str] = None,
        advisory: bool = False,
    ) -> ProbeResult:
        """Probe a key and compare against an expected value."""
        value, ok = self.probe(key)
        return ProbeResult(
            key=ProbeKey(key).value,
            value=value,
            supported=ok,
            expected=expected,
            advisory=advisory,
        )

    def sysctl(self, key: str) -> Optional[str]:
        """Read a sysctl value from /proc/sys. None if the key does not exist."""
        raw = self._read(sysctl_path(key))
        if raw is None:
            return None
        return " ".join(raw.split())

    def exists(self, path: str) -> bool:
        return host_path(self.config.root, path).exists()

    def default_interface(self) -> Optional[str]:
        """Interface carrying the default route, from `ip route get`."""
        result = self.runner.run(["ip", "route", "get", "1.1.1.1"])
        if not result.ok:
            return None
        match = re.search(r"\bdev\s+(\S+)", result.stdout)
        return match.group(1) if match else None

    # =========================================================================
    # File helpers
    # =========================================================================

    def _read(self, path: str) -> Optional[str]:
        try:
            return host_path(self.config.root, path).read_text().strip()
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError, PermissionError):
            return None

    # =========================================================================
    # Network
    # =========================================================================

    def _probe_bbr_available(self) -> Tuple[Optional[str], bool]:
        available = self.sysctl(SYSCTL_KEYS[ProbeKey.TCP_AVAILABLE_CONGESTION_CONTROL])
        if available is None:
            return None, False
        if "bbr" in available.split():
            return "yes", True

        if self._module_loaded("tcp_bbr"):
            return "yes", True

        # Loadable but not loaded: test, then undo the load
        if self.runner.run(["modprobe", "tcp_bbr"]).ok:
            self.runner.run(["modprobe", "-r", "tcp_bbr"])
            return "yes", True

        return None, False

    def _probe_listening_ports(self) -> Tuple[Optional[str], bool]:
        ports = self._listening_ports()
        if ports is None:
            return None, False
        return " ".join(str(p) for p in ports), True

    def _listening_ports(self) -> Optional[List[int]]:
        ports = set()
        seen_any = False
        for table in PROC_NET_TCP:
            content = self._read(table)
            if content is None:
                continue
            seen_any = True
            for line in content.splitlines()[1:]:
                fields = line.split()
                if len(fields) < 4 or fields[3] != TCP_LISTEN:
                    continue
                _, _, port_hex = fields[1].rpartition(":")
                try:
                    ports.add(int(port_hex, 16))
                except ValueError:
                    continue
        return sorted(ports) if seen_any else None

    # =========================================================================
    # ZRAM
    # =========================================================================

    def _probe_zram_supported(self) -> Tuple[Optional[str], bool]:
        if self.exists(SYS_ZRAM0) or self.exists(SYS_MODULE_ZRAM):
            return "yes", True

        if self.runner.run(["modprobe", "zram"]).ok:
            self.runner.run(["modprobe", "-r", "zram"])
            return "yes", True

        return None, False

    def _probe_zram_active(self) -> Tuple[Optional[str], bool]:
        swaps = self._read(PROC_SWAPS)
        if swaps is None:
            return None, False
        for line in swaps.splitlines()[1:]:
            if line.split() and "/zram" in line.split()[0]:
                return "yes", True
        return "no", True

    def _probe_zram_algorithm(self) -> Tuple[Optional[str], bool]:
        raw = self._read(f"{SYS_ZRAM0}/comp_algorithm")
        if raw is None:
            return None, False
        match = re.search(r"\[([^\]]+)\]", raw)
        return (match.group(1) if match else raw.split()[0] if raw else None), True

    # =========================================================================
    # SSH
    # =========================================================================

    def _probe_sshd_available(self) -> Tuple[Optional[str], bool]:
        found = self.runner.which("sshd")
        if found:
            return found, True
        if self.exists("/usr/sbin/sshd"):
            return "/usr/sbin/sshd", True
        return None, False

    def _sshd_effective(self, keyword: str) -> Tuple[Optional[str], bool]:
        """Read one keyword from the effective `sshd -T` configuration."""
        result = self.runner.run(["sshd", "-T"])
        if result.returncode == 127:
            return None, False
        if not result.ok:
            return None, True

        values = []
        for line in result.stdout.splitlines():
            parts = line.strip().split(None, 1)
            if len(parts) == 2 and parts[0].lower() == keyword:
                values.append(parts[1].strip())

        if not values:
            return None, True
        if keyword == "port":
            return " ".join(sorted(set(values), key=int)), True

        value = values[0]
        if keyword == "permitrootlogin" and value == "without-password":
            value = "prohibit-password"
        return value, True

    def _probe_ssh_dropin_included(self) -> Tuple[Optional[str], bool]:
        content = self._read(SSHD_CONFIG)
        if content is None:
            return None, False
        pattern = re.compile(r"^\s*Include\s+\S*sshd_config\.d/", re.IGNORECASE | re.MULTILINE)
        return ("yes" if pattern.search(content) else "no"), True

    def _probe_ssh_authorized_keys(self) -> Tuple[Optional[str], bool]:
        content = self._read(ROOT_AUTHORIZED_KEYS) or ""
        count = sum(
            1 for line in content.splitlines()
            if any(prefix in line for prefix in KEY_PREFIXES) and not line.lstrip().startswith("#")
        )
        return str(count), True

    # =========================================================================
    # DNS forwarder
    # =========================================================================

    def _probe_dns_forwarder_binary(self) -> Tuple[Optional[str], bool]:
        if self.exists(self.config.dns_binary):
            return self.config.dns_binary, True
        return None, False

    def _probe_dns_forwarder_listening(self) -> Tuple[Optional[str], bool]:
        ports = self._listening_ports()
        if ports is None:
            return None, False
        _, _, port = self.config.dns_listen.rpartition(":")
        return ("yes" if port.isdigit() and int(port) in ports else "no"), True

    # =========================================================================
    # Time sync
    # =========================================================================

    def _probe_chrony_active(self) -> Tuple[Optional[str], bool]:
        result = self.runner.run(["systemctl", "is-active", self.config.chrony_service])
        if result.returncode == 127:
            return None, False
        return result.stdout.strip() or "unknown", True

    def _probe_ntp_synchronized(self) -> Tuple[Optional[str], bool]:
        result = self.runner.run(["timedatectl", "show", "-p", "NTPSynchronized", "--value"])
        if not result.ok:
            return None, False
        return result.stdout.strip(), True

    def _probe_timezone(self) -> Tuple[Optional[str], bool]:
        result = self.runner.run(["timedatectl", "show", "-p", "Timezone", "--value"])
        if result.ok and result.stdout.strip():
            return result.stdout.strip(), True
        zone = self._read(ETC_TIMEZONE)
        if zone:
            return zone, True
        return None, False

    # =========================================================================
    # Memory and CPU
    # =========================================================================

    def _probe_mem_total_mb(self) -> Tuple[Optional[str], bool]:
        meminfo = self._read(PROC_MEMINFO)
        match = re.search(r"^MemTotal:\s+(\d+)\s+kB", meminfo or "", re.MULTILINE)
        if not match:
            return None, False
        return str(int(match.group(1)) // 1024), True

    def _probe_cpu_cores(self) -> Tuple[Optional[str], bool]:
        cpuinfo = self._read(PROC_CPUINFO)
        if cpuinfo is None:
            return None, False
        cores = len(re.findall(r"^processor\s*:", cpuinfo, re.MULTILINE))
        return str(max(cores, 1)), True

    # =========================================================================
    # Helpers
    # =========================================================================

    def _module_loaded(self, name: str) -> bool:
        result = self.runner.run(["lsmod"])
        if not result.ok:
            return False
        return any(line.split()[0] == name for line in result.stdout.splitlines()[1:] if line.split())
