"""
Error Protocols - Module → Orchestrator failure reporting.

ReconcileError and its subclasses are raised inside a module's
apply/revert sequence and converted into a ModuleResult at the
module boundary. ErrorKind is the stable, serialisable name that
ends up in the RunRecord.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of per-module failures."""
    CAPABILITY_UNSUPPORTED = "CapabilityUnsupported"
    DEPENDENCY_FAILED = "DependencyFailed"
    BACKUP_FAILED = "BackupFailed"
    WRITE_FAILED = "WriteFailed"
    ACTIVATION_FAILED = "ActivationFailed"
    VERIFICATION_FAILED = "VerificationFailed"
    SERVICE_UNREADY = "ServiceUnready"
    NO_BACKUP_FOUND = "NoBackupFound"
    UNEXPECTED = "Unexpected"


class Phase(str, Enum):
    """Phases where errors can occur."""
    PROBE = "PROBE"
    DEPENDENCIES = "DEPENDENCIES"
    SNAPSHOT = "SNAPSHOT"
    BACKUP = "BACKUP"
    WRITE = "WRITE"
    ACTIVATE = "ACTIVATE"
    VERIFY = "VERIFY"
    RESTORE = "RESTORE"
    DEACTIVATE = "DEACTIVATE"


class ReconcileError(Exception):
    """Base class for failures inside a module operation."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class CapabilityUnsupported(ReconcileError):
    """Host cannot support the desired feature. Not retried."""
    kind = ErrorKind.CAPABILITY_UNSUPPORTED


class DependencyFailed(ReconcileError):
    """A required package could not be installed."""
    kind = ErrorKind.DEPENDENCY_FAILED


class BackupFailed(ReconcileError):
    """I/O error while backing up a file, before any mutation."""
    kind = ErrorKind.BACKUP_FAILED


class WriteFailed(ReconcileError):
    """I/O error while materialising a config block."""
    kind = ErrorKind.WRITE_FAILED


class ActivationFailed(ReconcileError):
    """Reload/restart/sysctl command returned non-zero."""
    kind = ErrorKind.ACTIVATION_FAILED


class VerificationFailed(ReconcileError):
    """Activation succeeded but the post-apply probe did not match."""
    kind = ErrorKind.VERIFICATION_FAILED


class ServiceUnready(ReconcileError):
    """Timed out waiting for a service to report healthy."""
    kind = ErrorKind.SERVICE_UNREADY

    def __init__(
        self,
        message: str,
        last_status: str = "unknown",
        details: Optional[List[str]] = None,
    ):
        super().__init__(message, details)
        self.last_status = last_status


class NoBackupFound(ReconcileError):
    """Restore requested for a backup that was never created."""
    kind = ErrorKind.NO_BACKUP_FOUND


@dataclass
class FailureContext:
    """Context about a module failure."""
    kind: str
    phase: str
    message: str
    details: List[str] = field(default_factory=list)

    @classmethod
    def from_exception(cls, error: Exception, phase: str) -> "FailureContext":
        """Build a failure context from any exception."""
        if isinstance(error, ReconcileError):
            return cls(
                kind=error.kind.value,
                phase=phase,
                message=error.message,
                details=list(error.details),
            )
        return cls(
            kind=ErrorKind.UNEXPECTED.value,
            phase=phase,
            message=f"{type(error).__name__}: {error}",
        )

    @property
    def one_line(self) -> str:
        """First line of the message, for summaries."""
        return self.message.strip().splitlines()[0] if self.message.strip() else self.kind
