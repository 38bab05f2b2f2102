"""
Per-exercise rep state machines, looked up by exercise id once at session start.
"""

from typing import Dict, Optional, Type

from .base import MachineThresholds, RepStateMachine, StepResult
from .bicep_curl import BicepCurlStateMachine, CurlThresholds
from .pushup import PushupStateMachine, PushupThresholds
from .squat import SquatStateMachine, SquatThresholds

STATE_MACHINES: Dict[str, Type[RepStateMachine]] = {
    SquatStateMachine.exercise_id: SquatStateMachine,
    BicepCurlStateMachine.exercise_id: BicepCurlStateMachine,
    PushupStateMachine.exercise_id: PushupStateMachine,
}


def create_state_machine(exercise_id: str,
                         thresholds: Optional[MachineThresholds] = None) -> Optional[RepStateMachine]:
    """Returns None for an exercise with no machine."""
    machine_cls = STATE_MACHINES.get(exercise_id)
    if machine_cls is None:
        return None
    return machine_cls(thresholds)


__all__ = [
    "STATE_MACHINES",
    "create_state_machine",
    "MachineThresholds",
    "RepStateMachine",
    "StepResult",
    "SquatStateMachine",
    "SquatThresholds",
    "BicepCurlStateMachine",
    "CurlThresholds",
    "PushupStateMachine",
    "PushupThresholds",
]
