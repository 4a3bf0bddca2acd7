"""
Host access layer.

Everything that touches the machine goes through here:
- CommandRunner: external commands
- CapabilityProbe: read-only inspection
- BackupStore / RuntimeSnapshot: pre-change copies
- ConfigWriter: marker-block writes
- ServiceController / PackageInstaller: systemd and packages
"""

from .command import CommandRunner, CommandResult, RunnerConfig
from .probe import CapabilityProbe, ProbeConfig, ProbeKey
from .backup import BackupStore, BackupKind, RuntimeSnapshot
from .writer import ConfigWriter, markers, render
from .service import ServiceController, ServiceConfig
from .packages import PackageInstaller, PackageManager

__all__ = [
    "CommandRunner",
    "CommandResult",
    "RunnerConfig",
    "CapabilityProbe",
    "ProbeConfig",
    "ProbeKey",
    "BackupStore",
    "BackupKind",
    "RuntimeSnapshot",
    "ConfigWriter",
    "markers",
    "render",
    "ServiceController",
    "ServiceConfig",
    "PackageInstaller",
    "PackageManager",
]
