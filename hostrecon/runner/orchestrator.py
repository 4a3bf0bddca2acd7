"""
Orchestrator - Runs selected modules in registry order.

- One outcome per selected module; a failure never aborts the run
- SIGINT lets the current module finish, then skips the rest
- apply / revert runs persist a RunRecord; status runs are read-only
"""

import signal
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .. import __version__
from ..host.probe import ProbeKey
from ..modules import Module, ModuleContext, build_registry
from ..protocol.errors import FailureContext, Phase
from ..protocol.record import RunRecord, SystemInfo
from ..protocol.result import Mode, ModuleResult, Outcome

ALL = "all"
INTERRUPTED = "interrupted"


class SelectionError(ValueError):
    """Unknown module name on the command line."""


@dataclass
class RunReport:
    """Everything a run produced: the persisted record plus full results."""
    record: RunRecord
    results: List[ModuleResult] = field(default_factory=list)
    saved: bool = False
    save_error: Optional[OSError] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.record.all_succeeded and self.save_error is None else 1


class Orchestrator:
    """
    Sequential module runner.

    Callbacks let the console follow progress without the orchestrator
    printing anything itself.
    """

    def __init__(
        self,
        ctx: ModuleContext,
        registry: Optional[Dict[str, Module]] = None,
        tool_version: str = __version__,
    ):
        self.ctx = ctx
        self.registry = registry if registry is not None else build_registry(ctx)
        self.tool_version = tool_version
        self._interrupted = False

        # Callbacks
        self._on_module_start: Optional[Callable[[str, Mode], None]] = None
        self._on_module_done: Optional[Callable[[ModuleResult], None]] = None

    def on_module_start(self, callback: Callable[[str, Mode], None]):
        """Register callback fired before each module runs."""
        self._on_module_start = callback

    def on_module_done(self, callback: Callable[[ModuleResult], None]):
        """Register callback fired with each module result."""
        self._on_module_done = callback

    @property
    def module_names(self) -> List[str]:
        return list(self.registry)

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    def request_interrupt(self) -> None:
        """Finish the current module, then skip the remaining ones."""
        self._interrupted = True

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, target: str) -> List[str]:
        """Resolve a module name or 'all' to an ordered list of names."""
        if target == ALL:
            return self.module_names
        if target not in self.registry:
            raise SelectionError(
                f"Unknown module '{target}'. Available: {', '.join(self.module_names)}, all"
            )
        return [target]

    def last_record(self) -> Optional[RunRecord]:
        """Most recent persisted record, or None if never run (or unreadable)."""
        try:
            return RunRecord.load(self.ctx.config.status_path)
        except (OSError, ValueError, TypeError):
            return None

    def interactive_defaults(self, record: Optional[RunRecord] = None) -> Dict[str, bool]:
        """
        Default answer per module for interactive selection.

        Modules the run record lists as applied (their latest apply
        succeeded and no revert followed) default to skip; everything
        else defaults to run.
        """
        done = set(record.applied) if record is not None else set()
        return {name: name not in done for name in self.registry}

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, mode: Mode, names: List[str], handle_sigint: bool = True) -> RunReport:
        """
        Run the given modules in registry order.

        Args:
            mode: apply, status or revert
            names: Selected module names
            handle_sigint: Install a one-shot SIGINT handler for the run

        Returns:
            RunReport with the record (saved unless status mode; a failed
            save is reported in `save_error`, not raised)
        """
        mode = Mode(mode)
        ordered = [n for n in self.registry if n in set(names)]
        record = RunRecord.create(mode.value, self.tool_version)
        report = RunReport(record=record)

        installed = handle_sigint and threading.current_thread() is threading.main_thread()
        if installed:
            previous = signal.signal(signal.SIGINT, self._handle_sigint)

        try:
            for name in ordered:
                if self._interrupted:
                    result = ModuleResult(
                        module=name,
                        mode=mode.value,
                        outcome=Outcome.SKIPPED,
                        notes=[INTERRUPTED],
                    )
                else:
                    if self._on_module_start:
                        self._on_module_start(name, mode)
                    result = self._run_module(self.registry[name], mode)

                record.add(result)
                report.results.append(result)
                if self._on_module_done:
                    self._on_module_done(result)
        finally:
            if installed:
                signal.signal(signal.SIGINT, previous)

        record.interrupted = self._interrupted
        record.system_info = self.system_info()

        if mode != Mode.STATUS:
            record.carry_applied(self.last_record())
            try:
                record.save(self.ctx.config.status_path)
                report.saved = True
            except OSError as e:
                report.save_error = e

        return report

    def _run_module(self, module: Module, mode: Mode) -> ModuleResult:
        operation = getattr(module, mode.value)
        try:
            return operation()
        except Exception as e:
            # Modules convert their own failures; this guards the loop itself
            return ModuleResult(
                module=module.name,
                mode=mode.value,
                outcome=Outcome.FAILED,
                failure=FailureContext.from_exception(e, Phase.PROBE.value),
            )

    def _handle_sigint(self, signum, frame):
        self._interrupted = True
        # A second Ctrl-C aborts immediately
        signal.signal(signal.SIGINT, signal.default_int_handler)

    def system_info(self) -> SystemInfo:
        probe = self.ctx.probe
        return SystemInfo(
            kernel_release=probe.probe(ProbeKey.KERNEL_RELEASE)[0],
            congestion_control=probe.probe(ProbeKey.TCP_CONGESTION_CONTROL)[0],
            ssh_port=probe.probe(ProbeKey.SSH_PORT)[0],
        )
