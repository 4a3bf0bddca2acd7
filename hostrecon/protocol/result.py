"""
ModuleResult - Module → Orchestrator protocol.

Contains probe observations and the outcome of a single module
operation (apply, status or revert).
"""

from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum

from .errors import FailureContext


class Outcome(str, Enum):
    """Per-module outcome recorded in the RunRecord."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class Mode(str, Enum):
    """Orchestrator run modes."""
    APPLY = "apply"
    STATUS = "status"
    REVERT = "revert"


@dataclass
class ProbeResult:
    """A single (key, observed value, matches) observation."""
    key: str
    value: Optional[str]
    supported: bool = True
    expected: Optional[str] = None
    advisory: bool = False

    @property
    def matches(self) -> bool:
        """True if the observation satisfies the expectation.

        Advisory probes and probes without an expected value always match;
        an unsupported probe only matches when nothing is expected of it.
        """
        if self.advisory or self.expected is None:
            return True
        if not self.supported or self.value is None:
            return False
        return self.value.strip() == self.expected.strip()

    @property
    def display_value(self) -> str:
        if not self.supported:
            return "unsupported"
        return self.value if self.value not in (None, "") else "N/A"


@dataclass
class ModuleResult:
    """Result of one module operation."""
    module: str
    mode: str
    outcome: Outcome
    changed: bool = False
    state: str = "NOT_APPLIED"
    probes: List[ProbeResult] = field(default_factory=list)
    touched_files: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    failure: Optional[FailureContext] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCEEDED

    @property
    def error_kind(self) -> Optional[str]:
        return self.failure.kind if self.failure else None

    @property
    def cause(self) -> str:
        """One-line cause for summaries."""
        if self.failure:
            return self.failure.one_line
        if self.notes:
            return self.notes[-1]
        return ""

    def mismatched(self) -> List[ProbeResult]:
        """Probes that did not match their expectation."""
        return [p for p in self.probes if not p.matches]
