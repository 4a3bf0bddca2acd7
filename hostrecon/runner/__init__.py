"""
Runner package - Module lifecycle and orchestration.

The orchestrator lives in runner.orchestrator and is imported from
there directly, since it depends on the module registry which in turn
depends on the state machine defined here.
"""

from .state import ModuleState, StateMachine, StateEvent, TRANSITIONS

__all__ = [
    "ModuleState",
    "StateMachine",
    "StateEvent",
    "TRANSITIONS",
]
