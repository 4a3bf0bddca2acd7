"""
Reconciliation modules and their fixed, ordered registry.

Each module exclusively owns the files it declares; duplicate names or
managed paths are rejected when the registry is built.
"""

from typing import Dict, List, Sequence, Type

from .base import Module, ModuleContext
from .network import NetworkModule
from .zram import ZramModule
from .time_sync import TimeSyncModule
from .ssh import SshModule
from .dns import DnsForwarderModule

# Execution order
MODULE_CLASSES: List[Type[Module]] = [
    NetworkModule,
    ZramModule,
    TimeSyncModule,
    SshModule,
    DnsForwarderModule,
]


class RegistryError(ValueError):
    """Two modules claim the same name or the same managed file."""


def validate_registry(classes: Sequence[Type[Module]]) -> None:
    """Reject duplicate module names and duplicate managed paths."""
    names: Dict[str, str] = {}
    owners: Dict[str, str] = {}

    for cls in classes:
        if not cls.name:
            raise RegistryError(f"{cls.__name__} has no name")
        if cls.name in names:
            raise RegistryError(f"Duplicate module name: {cls.name}")
        names[cls.name] = cls.__name__

        for path in cls.files:
            if path in owners:
                raise RegistryError(
                    f"{path} is managed by both {owners[path]} and {cls.name}"
                )
            owners[path] = cls.name


def build_registry(
    ctx: ModuleContext,
    classes: Sequence[Type[Module]] = MODULE_CLASSES,
) -> Dict[str, Module]:
    """Instantiate modules in registry order."""
    validate_registry(classes)
    return {cls.name: cls(ctx) for cls in classes}


__all__ = [
    "Module",
    "ModuleContext",
    "NetworkModule",
    "ZramModule",
    "TimeSyncModule",
    "SshModule",
    "DnsForwarderModule",
    "MODULE_CLASSES",
    "RegistryError",
    "validate_registry",
    "build_registry",
]
