"""Step execution: conversation history, step types and the sequencer."""

from .history import ConversationHistory, ConversationTurn, Role
from .sequencer import StepSequencer
from .state import ExecutionState, ExecutionStatus
from .steps import (
    DelayStep,
    MessageStep,
    PauseStep,
    Step,
    StepKind,
    StepStatus,
    sort_steps,
    step_from_dict,
)

__all__ = [
    "ConversationHistory",
    "ConversationTurn",
    "Role",
    "StepSequencer",
    "ExecutionState",
    "ExecutionStatus",
    "Step",
    "StepKind",
    "StepStatus",
    "MessageStep",
    "PauseStep",
    "DelayStep",
    "sort_steps",
    "step_from_dict",
]
