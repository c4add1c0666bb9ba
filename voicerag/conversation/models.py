"""Conversation data model: role-tagged turns in insertion order."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Speaker of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""

    role: Role
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Turn:
        timestamp = data.get("timestamp")
        if isinstance(timestamp, datetime):
            created_at = timestamp
        elif timestamp:
            created_at = datetime.fromisoformat(str(timestamp))
        else:
            created_at = datetime.now(timezone.utc)
        return cls(role=Role(data["role"]), content=data["content"], created_at=created_at)


class Conversation:
    """Ordered sequence of turns.

    Alternation between user and assistant is not enforced: a failed turn
    followed by a retry leaves two user turns in a row.
    """

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns: list[Turn] = list(turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def append(self, role: Role, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self._turns.append(turn)
        return turn

    def as_history(self) -> list[dict[str, Any]]:
        """Serialise to the wire format sent to the completion endpoint."""
        return [t.to_dict() for t in self._turns]

    @classmethod
    def from_history(cls, history: Iterable[dict[str, Any]]) -> Conversation:
        return cls(Turn.from_dict(item) for item in history)
