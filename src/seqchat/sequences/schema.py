"""Pydantic models for YAML sequence files."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from seqchat.execution.steps import (
    DEFAULT_DELAY_SECONDS,
    DelayStep,
    MessageStep,
    PauseStep,
    Step,
)


class SequenceStep(BaseModel):
    """One step entry in a sequence file.

    ``kind`` selects which of the other fields apply: ``text`` for message
    steps, ``duration_seconds`` for delays and ``is_paused`` for pauses.
    """

    model_config = {"extra": "forbid"}

    kind: Literal["message", "pause", "delay"] = Field(
        "message", description="Step variant"
    )
    id: Optional[str] = Field(None, description="Stable step identifier")
    position: Optional[int] = Field(
        None, description="Sort key; defaults to the entry's list index"
    )
    text: Optional[str] = Field(None, description="User message (message steps)")
    duration_seconds: Optional[int] = Field(
        None, ge=0, description="Delay length in seconds (delay steps)"
    )
    is_paused: bool = Field(
        True, description="Whether a pause step halts the run (pause steps)"
    )

    @model_validator(mode="after")
    def check_kind_fields(self) -> "SequenceStep":
        if self.kind == "message":
            if self.text is None or not self.text.strip():
                raise ValueError("message steps require non-empty 'text'")
        elif self.text is not None:
            raise ValueError(f"'text' is only valid on message steps, not {self.kind}")

        if self.kind != "delay" and self.duration_seconds is not None:
            raise ValueError("'duration_seconds' is only valid on delay steps")
        return self


class SequenceDefinition(BaseModel):
    """Complete sequence loaded from YAML."""

    name: str = Field(..., min_length=1, description="Sequence name")
    description: Optional[str] = Field(None, description="What this sequence does")
    system_context: Optional[str] = Field(
        None, description="System prompt placed before the first turn"
    )
    steps: List[SequenceStep] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "SequenceDefinition":
        seen = set()
        for entry in self.steps:
            if entry.id is None:
                continue
            if entry.id in seen:
                raise ValueError(f"Duplicate step id: {entry.id}")
            seen.add(entry.id)
        return self

    def to_steps(self) -> List[Step]:
        """Build executable Step objects, in file order."""
        steps: List[Step] = []
        for index, entry in enumerate(self.steps):
            step_id = entry.id or f"step-{index + 1}"
            position = entry.position if entry.position is not None else index

            if entry.kind == "message":
                steps.append(MessageStep(step_id, position, entry.text))
            elif entry.kind == "pause":
                steps.append(PauseStep(step_id, position, entry.is_paused))
            else:
                duration = (
                    entry.duration_seconds
                    if entry.duration_seconds is not None
                    else DEFAULT_DELAY_SECONDS
                )
                steps.append(DelayStep(step_id, position, duration))
        return steps
