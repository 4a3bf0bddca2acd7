"""
Module - The unit of reconciliation.

A module declares the files, services, packages and runtime keys it
owns, and fills in a few hooks. The base class runs the shared
apply / status / revert sequences:

apply:  capability → short-circuit → dependencies → runtime snapshot
        → backup → write → activate → verify
revert: stop services → restore originals → deactivate → restore runtime values
status: probes only, no side effects beyond reads
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..config import Config
from ..host.backup import BackupKind, BackupStore, RuntimeSnapshot
from ..host.command import CommandResult, CommandRunner
from ..host.paths import host_path
from ..host.packages import PackageInstaller
from ..host.probe import CapabilityProbe
from ..host.service import ServiceController
from ..host.writer import ConfigWriter
from ..protocol.errors import (
    ActivationFailed,
    CapabilityUnsupported,
    FailureContext,
    NoBackupFound,
    Phase,
    VerificationFailed,
)
from ..protocol.result import Mode, ModuleResult, Outcome, ProbeResult
from ..runner.state import ModuleState, StateMachine


@dataclass
class ModuleContext:
    """Collaborators shared by every module in a run."""
    config: Config
    runner: CommandRunner
    probe: CapabilityProbe
    backups: BackupStore
    writer: ConfigWriter
    services: ServiceController
    packages: PackageInstaller
    snapshots: RuntimeSnapshot

    @classmethod
    def create(
        cls,
        config: Config,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ModuleContext":
        runner = runner or CommandRunner()
        root = config.root
        return cls(
            config=config,
            runner=runner,
            probe=CapabilityProbe(runner, config.probe_config()),
            backups=BackupStore(root),
            writer=ConfigWriter(root),
            services=ServiceController(runner, config.service, root, sleep=sleep, clock=clock),
            packages=PackageInstaller(runner),
            snapshots=RuntimeSnapshot(config.state_dir),
        )

    # sysctl helpers; file arguments are host paths

    def sysctl_load(self, path: str) -> CommandResult:
        """Load a sysctl file, ignoring keys this kernel does not have."""
        return self.runner.run(["sysctl", "-e", "-p", str(host_path(self.config.root, path))])

    def sysctl_write(self, key: str, value: str) -> CommandResult:
        return self.runner.run(["sysctl", "-w", f"{key}={value}"])

    def sysctl_system(self) -> CommandResult:
        return self.runner.run(["sysctl", "--system"])


class Module:
    """
    Base class for reconciliation modules.

    Subclasses set the class attributes and implement `blocks`,
    `expectations` and `activate`; the rest have working defaults.
    """

    name: str = ""
    description: str = ""
    marker: str = ""
    files: Tuple[str, ...] = ()
    services: Tuple[str, ...] = ()
    packages: Tuple[str, ...] = ()
    runtime_keys: Tuple[str, ...] = ()

    def __init__(self, ctx: ModuleContext):
        self.ctx = ctx

    # =========================================================================
    # Hooks
    # =========================================================================

    def check_capabilities(self, notes: List[str]) -> None:
        """Raise CapabilityUnsupported on a hard miss; append advisory notes."""

    def blocks(self) -> Dict[str, str]:
        """Desired marker-block body per managed file."""
        raise NotImplementedError

    def expectations(self) -> List[ProbeResult]:
        """Probes that must match after a successful apply."""
        raise NotImplementedError

    def status_probes(self) -> List[ProbeResult]:
        return self.expectations()

    def activate(self, notes: List[str]) -> None:
        """Make the written configuration take effect."""
        raise NotImplementedError

    def stop_services(self, notes: List[str]) -> None:
        """
        Stop and disable owned services while their unit files still exist.

        Raises:
            ActivationFailed: systemctl stop or disable returned non-zero
        """
        services = self.ctx.services
        for service in self.services:
            if not services.unit_exists(service):
                notes.append(f"{service} is not installed; nothing to stop")
                continue
            for action in (services.stop, services.disable):
                if not action(service):
                    raise ActivationFailed(
                        f"systemctl {action.__name__} {service} failed",
                        details=services.get_tail_logs(service),
                    )

    def deactivate(self, notes: List[str]) -> None:
        """Undo activation after the original files are back."""

    # =========================================================================
    # Helpers
    # =========================================================================

    def current_state(self) -> ModuleState:
        writer = self.ctx.writer
        if self.files and all(writer.has_block(path, self.marker) for path in self.files):
            return ModuleState.APPLIED
        return ModuleState.NOT_APPLIED

    def is_current(self, blocks: Dict[str, str]) -> bool:
        return all(self.ctx.writer.is_current(path, self.marker, body) for path, body in blocks.items())

    def require(self, result: CommandResult, what: str) -> CommandResult:
        """Raise ActivationFailed if an activation command failed."""
        if not result.ok:
            raise ActivationFailed(f"{what} failed (exit {result.returncode})", details=result.tail())
        return result

    def _result(self, mode: Mode) -> ModuleResult:
        return ModuleResult(module=self.name, mode=mode.value, outcome=Outcome.FAILED)

    # =========================================================================
    # Operations
    # =========================================================================

    def status(self) -> ModuleResult:
        """Probe current state. Never mutates the host."""
        result = self._result(Mode.STATUS)
        result.state = self.current_state().value
        try:
            result.probes = self.status_probes()
        except Exception as e:
            result.failure = FailureContext.from_exception(e, Phase.PROBE.value)
            return result

        result.outcome = Outcome.SUCCEEDED
        mismatched = result.mismatched()
        if mismatched:
            result.notes.append(
                "not matching: " + ", ".join(f"{p.key}={p.display_value}" for p in mismatched)
            )
        return result

    def apply(self) -> ModuleResult:
        """Reconcile the host to the desired state."""
        result = self._result(Mode.APPLY)
        machine = StateMachine(self.current_state())
        notes = result.notes
        phase = Phase.PROBE

        try:
            self.check_capabilities(notes)
        except CapabilityUnsupported as e:
            result.outcome = Outcome.SKIPPED
            result.failure = FailureContext.from_exception(e, phase.value)
            result.state = machine.reported.value
            return result
        except Exception as e:
            result.failure = FailureContext.from_exception(e, phase.value)
            result.state = machine.reported.value
            return result

        machine.transition(ModuleState.APPLYING)
        try:
            blocks = self.blocks()

            if self.is_current(blocks):
                probes = self.expectations()
                if all(p.matches for p in probes):
                    result.probes = probes
                    result.outcome = Outcome.SUCCEEDED
                    notes.append("already in desired state")
                    machine.transition(ModuleState.APPLIED)
                    result.state = machine.reported.value
                    return result

            phase = Phase.DEPENDENCIES
            installed = self.ctx.packages.ensure(self.packages)
            if installed:
                notes.append(f"installed {', '.join(installed)}")

            phase = Phase.SNAPSHOT
            if self.runtime_keys:
                self.ctx.snapshots.capture_once(
                    self.name, {key: self.ctx.probe.sysctl(key) for key in self.runtime_keys}
                )

            phase = Phase.BACKUP
            for path in blocks:
                self.ctx.backups.backup(path)

            phase = Phase.WRITE
            for path, body in blocks.items():
                self.ctx.writer.write_block(path, self.marker, body)
                result.touched_files.append(path)

            phase = Phase.ACTIVATE
            self.activate(notes)
            result.changed = True

            phase = Phase.VERIFY
            result.probes = self.expectations()
            mismatched = result.mismatched()
            if mismatched:
                raise VerificationFailed(
                    "Post-apply probe mismatch: " + ", ".join(
                        f"{p.key}={p.display_value} (expected {p.expected})" for p in mismatched
                    )
                )

            result.outcome = Outcome.SUCCEEDED
            machine.transition(ModuleState.APPLIED)
        except Exception as e:
            result.failure = FailureContext.from_exception(e, phase.value)
            machine.transition(ModuleState.APPLY_FAILED)

        result.state = machine.reported.value
        return result

    def revert(self) -> ModuleResult:
        """Restore every managed file from its original and undo activation."""
        result = self._result(Mode.REVERT)
        machine = StateMachine(self.current_state())
        machine.transition(ModuleState.REVERTING)
        notes = result.notes
        phase = Phase.RESTORE

        try:
            backups = self.ctx.backups
            missing = [p for p in self.files if not backups.has_backup(p, BackupKind.ORIGINAL)]
            if missing:
                raise NoBackupFound(
                    f"No original backup for {', '.join(missing)} (module never applied)"
                )

            phase = Phase.DEACTIVATE
            self.stop_services(notes)

            phase = Phase.RESTORE
            for path in self.files:
                backups.restore(path, BackupKind.ORIGINAL)
                result.touched_files.append(path)

            phase = Phase.DEACTIVATE
            self.deactivate(notes)
            self._restore_runtime(notes)

            result.probes = self.status_probes()
            result.outcome = Outcome.SUCCEEDED
            result.changed = True
            machine.transition(ModuleState.REVERTED)
        except Exception as e:
            result.failure = FailureContext.from_exception(e, phase.value)
            machine.transition(ModuleState.REVERT_FAILED)

        result.state = machine.reported.value
        return result

    def _restore_runtime(self, notes: List[str]) -> None:
        if not self.runtime_keys:
            return
        self.ctx.sysctl_system()
        values = self.ctx.snapshots.load(self.name)
        if values is None:
            notes.append("no runtime snapshot; kernel values reloaded from config only")
            return
        failed = [key for key, value in values.items() if not self.ctx.sysctl_write(key, value).ok]
        if failed:
            notes.append(f"could not restore runtime values: {', '.join(failed)}")
