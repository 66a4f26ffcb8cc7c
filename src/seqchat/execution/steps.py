"""Step classes for sequential chat execution."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class StepKind(Enum):
    """Step variants understood by the sequencer."""

    message = "message"
    pause = "pause"
    delay = "delay"


class StepStatus(Enum):
    """Derived per-step execution status."""

    READY = "ready"
    SENT = "sent"
    COMPLETE = "complete"
    ERROR = "error"


DEFAULT_DELAY_SECONDS = 5


class Step(ABC):
    """Base class for sequence steps.

    Identity (``id``) and ``position`` are owned by the editor. The sequencer
    only touches the derived fields: ``status``, ``started_at``,
    ``completed_at`` and, for message steps, ``response`` and ``error``.
    """

    kind: StepKind

    def __init__(self, id: str, position: int):
        self.id = id
        self.position = position
        self.status = StepStatus.READY
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None

    def mark_sent(self):
        self.status = StepStatus.SENT
        self.started_at = datetime.now()

    def mark_completed(self):
        """Mark step as completed."""
        self.status = StepStatus.COMPLETE
        self.completed_at = datetime.now()

    def mark_error(self):
        self.status = StepStatus.ERROR
        self.completed_at = datetime.now()

    def reset(self):
        """Return the step to READY, clearing per-run fields."""
        self.status = StepStatus.READY
        self.started_at = None
        self.completed_at = None

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert step to dictionary for serialization."""
        pass

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(id={self.id!r}, position={self.position}, "
            f"status={self.status.value})"
        )


class MessageStep(Step):
    """Send ``text`` as a user turn and record the assistant reply."""

    kind = StepKind.message

    def __init__(self, id: str, position: int, text: str):
        super().__init__(id, position)
        self.text = text
        self.response: Optional[str] = None
        self.error: Optional[Exception] = None

    def reset(self):
        super().reset()
        self.response = None
        self.error = None

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["text"] = self.text
        data["response"] = self.response
        data["error"] = str(self.error) if self.error else None
        return data


class PauseStep(Step):
    """Manual halt point; passed through when ``is_paused`` is False."""

    kind = StepKind.pause

    def __init__(self, id: str, position: int, is_paused: bool = True):
        super().__init__(id, position)
        self.is_paused = is_paused

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["is_paused"] = self.is_paused
        return data


class DelayStep(Step):
    """Suspend the run for ``duration_seconds``."""

    kind = StepKind.delay

    def __init__(
        self, id: str, position: int, duration_seconds: int = DEFAULT_DELAY_SECONDS
    ):
        super().__init__(id, position)
        if duration_seconds < 0:
            raise ValueError(
                f"duration_seconds must be non-negative, got {duration_seconds}"
            )
        self.duration_seconds = int(duration_seconds)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["duration_seconds"] = self.duration_seconds
        return data


def sort_steps(steps: List[Step]) -> List[Step]:
    """Sort steps by position ascending.

    ``sorted`` is stable, so steps sharing a position keep their input order.
    """
    return sorted(steps, key=lambda step: step.position)


def step_from_dict(data: Dict[str, Any], default_position: int = 0) -> Step:
    """Build a Step from the editor's plain-dict representation.

    Accepts both this package's keys (``kind``, ``text``, ``is_paused``,
    ``duration_seconds``) and the editor's (``step``, ``content``,
    ``isPaused``, ``duration``).
    """
    kind_value = data.get("kind") or data.get("step") or StepKind.message.value
    try:
        kind = StepKind(str(kind_value).lower())
    except ValueError:
        raise ValueError(f"Unknown step kind: {kind_value!r}")

    step_id = str(data.get("id") or f"step-{default_position}")
    position = int(data.get("position", default_position))

    if kind is StepKind.message:
        text = data.get("text", data.get("content"))
        if text is None:
            raise ValueError(f"Message step {step_id} has no text")
        return MessageStep(step_id, position, str(text))
    if kind is StepKind.pause:
        is_paused = data.get("is_paused", data.get("isPaused", True))
        return PauseStep(step_id, position, bool(is_paused))

    duration = data.get(
        "duration_seconds", data.get("duration", DEFAULT_DELAY_SECONDS)
    )
    return DelayStep(step_id, position, int(duration))
