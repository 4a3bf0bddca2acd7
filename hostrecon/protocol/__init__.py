"""
Protocol definitions for hostrecon.

Plain dataclasses exchanged between modules and the orchestrator:
- ProbeResult / ModuleResult: Module → Orchestrator
- RunRecord: Orchestrator → disk (cross-invocation memory)
- ReconcileError hierarchy: typed failures caught at the module boundary
"""

from .result import (
    Mode,
    Outcome,
    ProbeResult,
    ModuleResult,
)
from .record import (
    RunRecord,
    OutcomeEntry,
    SystemInfo,
    SCHEMA_VERSION,
)
from .errors import (
    ErrorKind,
    Phase,
    FailureContext,
    ReconcileError,
    CapabilityUnsupported,
    DependencyFailed,
    BackupFailed,
    WriteFailed,
    ActivationFailed,
    VerificationFailed,
    ServiceUnready,
    NoBackupFound,
)

__all__ = [
    # Results
    "Mode",
    "Outcome",
    "ProbeResult",
    "ModuleResult",
    # Record
    "RunRecord",
    "OutcomeEntry",
    "SystemInfo",
    "SCHEMA_VERSION",
    # Errors
    "ErrorKind",
    "Phase",
    "FailureContext",
    "ReconcileError",
    "CapabilityUnsupported",
    "DependencyFailed",
    "BackupFailed",
    "WriteFailed",
    "ActivationFailed",
    "VerificationFailed",
    "ServiceUnready",
    "NoBackupFound",
]
