"""
StateMachine - Tracks a module through one apply or revert.

NOT_APPLIED → APPLYING → APPLIED
                 ↓
            APPLY_FAILED

any settled state → REVERTING → REVERTED (reported as NOT_APPLIED)
                        ↓
                  REVERT_FAILED
"""

from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone


class ModuleState(str, Enum):
    """Module lifecycle states."""
    NOT_APPLIED = "NOT_APPLIED"
    APPLYING = "APPLYING"
    APPLIED = "APPLIED"
    APPLY_FAILED = "APPLY_FAILED"
    REVERTING = "REVERTING"
    REVERTED = "REVERTED"
    REVERT_FAILED = "REVERT_FAILED"


SETTLED = (
    ModuleState.NOT_APPLIED,
    ModuleState.APPLIED,
    ModuleState.APPLY_FAILED,
    ModuleState.REVERTED,
    ModuleState.REVERT_FAILED,
)

# Valid state transitions
TRANSITIONS: Dict[ModuleState, List[ModuleState]] = {
    ModuleState.APPLYING: [ModuleState.APPLIED, ModuleState.APPLY_FAILED],
    ModuleState.REVERTING: [ModuleState.REVERTED, ModuleState.REVERT_FAILED],
}
for _settled in SETTLED:
    TRANSITIONS[_settled] = [ModuleState.APPLYING, ModuleState.REVERTING]


@dataclass
class StateEvent:
    """Record of a state transition."""
    from_state: ModuleState
    to_state: ModuleState
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


class StateMachine:
    """
    Validated state transitions for a single module.

    Ensures valid transitions and tracks history.
    """

    def __init__(self, initial_state: ModuleState = ModuleState.NOT_APPLIED):
        self._state = ModuleState(initial_state)
        self._history: List[StateEvent] = []

    @property
    def state(self) -> ModuleState:
        """Get current state."""
        return self._state

    @property
    def reported(self) -> ModuleState:
        """State as shown to users; REVERTED reads as NOT_APPLIED."""
        if self._state == ModuleState.REVERTED:
            return ModuleState.NOT_APPLIED
        return self._state

    @property
    def history(self) -> List[StateEvent]:
        """Get state transition history."""
        return self._history.copy()

    def can_transition(self, to_state: ModuleState) -> bool:
        """Check if transition to target state is valid."""
        return to_state in TRANSITIONS.get(self._state, [])

    def transition(self, to_state: ModuleState, metadata: Optional[Dict[str, Any]] = None):
        """
        Transition to a new state.

        Raises:
            ValueError: If transition is not valid
        """
        if not self.can_transition(to_state):
            raise ValueError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid transitions: {[s.name for s in TRANSITIONS.get(self._state, [])]}"
            )

        self._history.append(StateEvent(
            from_state=self._state,
            to_state=to_state,
            timestamp=datetime.now(timezone.utc),
            metadata=metadata or {},
        ))
        self._state = to_state

    def is_settled(self) -> bool:
        return self._state in SETTLED

    def format_history(self) -> str:
        """Format history as human-readable string."""
        return '\n'.join(
            f"{event.from_state.name} → {event.to_state.name}" for event in self._history
        )
