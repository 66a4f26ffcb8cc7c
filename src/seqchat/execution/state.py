"""Execution state owned by the step sequencer."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class ExecutionStatus(Enum):
    """Global run status."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.ERROR})


@dataclass(frozen=True)
class ExecutionState:
    """Immutable snapshot of a run.

    ``current_index`` indexes the position-sorted step list and names the step
    the run is at (or halted at).
    """

    status: ExecutionStatus = ExecutionStatus.IDLE
    current_index: int = 0
    last_error: Optional[Exception] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def evolve(self, **changes: Any) -> "ExecutionState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        error = None
        if self.last_error is not None:
            to_dict = getattr(self.last_error, "to_dict", None)
            error = to_dict() if callable(to_dict) else {"message": str(self.last_error)}
        return {
            "status": self.status.value,
            "current_index": self.current_index,
            "last_error": error,
        }
