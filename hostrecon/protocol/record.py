"""
Data models for the persisted run record.

The RunRecord is the only cross-invocation memory: its absence means
"never run before". It is replaced at the end of every apply or revert
run; only the `applied` list carries over from the previous record.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from pathlib import Path
import json
import os
import tempfile

from .result import Mode, ModuleResult, Outcome

SCHEMA_VERSION = 1


@dataclass
class SystemInfo:
    """Small snapshot of host facts at the end of a run."""
    kernel_release: Optional[str] = None
    congestion_control: Optional[str] = None
    ssh_port: Optional[str] = None


@dataclass
class OutcomeEntry:
    """Per-module line in the run record."""
    module: str
    outcome: str
    error_kind: Optional[str] = None
    cause: str = ""

    @classmethod
    def from_result(cls, result: ModuleResult) -> "OutcomeEntry":
        return cls(
            module=result.module,
            outcome=result.outcome.value,
            error_kind=result.error_kind,
            cause=result.cause,
        )


@dataclass
class RunRecord:
    """Summary of the most recent orchestrator invocation."""

    mode: str
    tool_version: str
    timestamp: str
    schema_version: int = SCHEMA_VERSION
    interrupted: bool = False
    outcomes: List[OutcomeEntry] = field(default_factory=list)
    touched_files: List[str] = field(default_factory=list)
    system_info: SystemInfo = field(default_factory=SystemInfo)
    applied: List[str] = field(default_factory=list)

    @classmethod
    def create(cls, mode: str, tool_version: str) -> "RunRecord":
        """Create a new record stamped with the current UTC time."""
        return cls(
            mode=mode,
            tool_version=tool_version,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def add(self, result: ModuleResult) -> None:
        """Record one module outcome and the files it touched."""
        self.outcomes.append(OutcomeEntry.from_result(result))
        for path in result.touched_files:
            if path not in self.touched_files:
                self.touched_files.append(path)

    def _names(self, outcome: Outcome) -> List[str]:
        return [e.module for e in self.outcomes if e.outcome == outcome.value]

    @property
    def succeeded(self) -> List[str]:
        return self._names(Outcome.SUCCEEDED)

    @property
    def failed(self) -> List[str]:
        return self._names(Outcome.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._names(Outcome.SKIPPED)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed and not self.interrupted

    def carry_applied(self, previous: Optional["RunRecord"]) -> None:
        """
        Work out which modules stand applied after this run.

        Starts from the previous record. A successful apply adds a module,
        a failed apply or a successful revert removes it; modules this run
        did not touch, or skipped, keep their standing.
        """
        applied = list(previous.applied) if previous else []
        applying = self.mode == Mode.APPLY.value
        for entry in self.outcomes:
            if entry.outcome == Outcome.SKIPPED.value:
                continue
            succeeded = entry.outcome == Outcome.SUCCEEDED.value
            if applying and succeeded:
                if entry.module not in applied:
                    applied.append(entry.module)
            elif (applying or succeeded) and entry.module in applied:
                applied.remove(entry.module)
        self.applied = applied

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "schema_version": self.schema_version,
            "tool_version": self.tool_version,
            "mode": self.mode,
            "last_run": self.timestamp,
            "interrupted": self.interrupted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "applied": list(self.applied),
            "outcomes": [asdict(e) for e in self.outcomes],
            "touched_files": list(self.touched_files),
            "system_info": asdict(self.system_info),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunRecord":
        """Create from dictionary (JSON deserialization)."""
        return cls(
            mode=data.get("mode", ""),
            tool_version=data.get("tool_version", ""),
            timestamp=data.get("last_run", ""),
            schema_version=data.get("schema_version", SCHEMA_VERSION),
            interrupted=data.get("interrupted", False),
            outcomes=[OutcomeEntry(**e) for e in data.get("outcomes", [])],
            touched_files=list(data.get("touched_files", [])),
            system_info=SystemInfo(**data.get("system_info", {})),
            applied=list(data.get("applied", [])),
        )

    def save(self, path: Path) -> None:
        """Save record to JSON file, replacing any previous one atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @classmethod
    def load(cls, path: Path) -> Optional["RunRecord"]:
        """Load record from JSON file. None if it has never been written."""
        if not path.exists():
            return None
        with open(path) as f:
            return cls.from_dict(json.load(f))
