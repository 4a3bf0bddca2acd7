"""Centralized host path constants for hostrecon.

All paths are absolute host paths; `host_path` re-roots them under the
configured host root so the whole stack can run against a sandbox.
"""

from pathlib import Path
from typing import Union

# Kernel interfaces
PROC_SYS = "/proc/sys"
PROC_SWAPS = "/proc/swaps"
PROC_MEMINFO = "/proc/meminfo"
PROC_CPUINFO = "/proc/cpuinfo"
PROC_NET_TCP = ("/proc/net/tcp", "/proc/net/tcp6")
SYS_ZRAM0 = "/sys/block/zram0"
SYS_MODULE_ZRAM = "/sys/module/zram"

# Network
SYSCTL_CONF = "/etc/sysctl.conf"
LIMITS_CONF = "/etc/security/limits.conf"

# ZRAM
ZRAMSWAP_DEFAULTS = "/etc/default/zramswap"
ZRAM_SYSCTL_CONF = "/etc/sysctl.d/99-zram.conf"

# Time sync
CHRONY_DROPIN = "/etc/chrony/conf.d/hostrecon.conf"
ETC_TIMEZONE = "/etc/timezone"

# SSH
SSHD_CONFIG = "/etc/ssh/sshd_config"
SSHD_DROPIN_DIR = "/etc/ssh/sshd_config.d"
SSHD_DROPIN = "/etc/ssh/sshd_config.d/99-hostrecon.conf"
ROOT_AUTHORIZED_KEYS = "/root/.ssh/authorized_keys"

# DNS forwarder
MOSDNS_CONFIG = "/etc/mosdns-x/config.yaml"
MOSDNS_UNIT = "/etc/systemd/system/mosdns-x.service"

# systemd unit search path, in lookup order
SYSTEMD_UNIT_DIRS = (
    "/etc/systemd/system",
    "/lib/systemd/system",
    "/usr/lib/systemd/system",
)


def host_path(root: Union[str, Path], path: Union[str, Path]) -> Path:
    """Resolve an absolute host path under `root`."""
    path = Path(path)
    if not path.is_absolute():
        raise ValueError(f"Host path must be absolute: {path}")
    root = Path(root)
    if root == Path("/"):
        return path
    return root / path.relative_to("/")


def sysctl_path(key: str) -> str:
    """Map a dotted sysctl key to its /proc/sys path."""
    return f"{PROC_SYS}/{key.replace('.', '/')}"
