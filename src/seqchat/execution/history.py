"""Append-only conversation history sent to the provider on every message step."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from seqchat.errors import HistoryError


class Role(Enum):
    """Author of a conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the conversation."""

    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationHistory:
    """Ordered log of system/user/assistant turns.

    Invariants:
    - at most one SYSTEM turn, and only as the first element
    - turns are only ever appended; never reordered or removed
    """

    def __init__(
        self,
        system_context: Optional[str] = None,
        turns: Optional[List[ConversationTurn]] = None,
    ):
        self._turns: List[ConversationTurn] = []
        if system_context:
            self.append(ConversationTurn(Role.SYSTEM, system_context))
        for turn in turns or []:
            self.append(turn)

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def system_context(self) -> Optional[str]:
        if self._turns and self._turns[0].role is Role.SYSTEM:
            return self._turns[0].content
        return None

    def append(self, turn: ConversationTurn) -> None:
        """Append a turn, enforcing the single-leading-SYSTEM invariant."""
        if not isinstance(turn, ConversationTurn):
            raise HistoryError(f"Expected ConversationTurn, got {type(turn).__name__}")
        if turn.role is Role.SYSTEM and self._turns:
            raise HistoryError(
                "SYSTEM turn must be the first turn and may appear only once"
            )
        self._turns.append(turn)

    def append_user(self, content: str) -> ConversationTurn:
        turn = ConversationTurn(Role.USER, content)
        self.append(turn)
        return turn

    def append_assistant(self, content: str) -> ConversationTurn:
        turn = ConversationTurn(Role.ASSISTANT, content)
        self.append(turn)
        return turn

    def extended(self, *turns: ConversationTurn) -> "ConversationHistory":
        """Return a new history holding these turns followed by ``turns``.

        Used to stage a pending user turn for dispatch without committing it.
        """
        staged = ConversationHistory(turns=list(self._turns))
        for turn in turns:
            staged.append(turn)
        return staged

    def last_user_turn(self) -> Optional[ConversationTurn]:
        for turn in reversed(self._turns):
            if turn.role is Role.USER:
                return turn
        return None

    def snapshot(self) -> Tuple[ConversationTurn, ...]:
        return self.turns

    def to_dict(self) -> Dict[str, Any]:
        return {"turns": [turn.to_dict() for turn in self._turns]}

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]

    def __repr__(self) -> str:
        return f"ConversationHistory(turns={len(self._turns)})"
