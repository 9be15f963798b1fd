from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: object) -> Turn:
        if not isinstance(data, dict):
            raise ValueError(f"Turn must be an object, got {type(data).__name__}")
        role = data.get("role")
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError("Turn content must be a string")
        return cls(role=Role(role), content=content)


@dataclass(frozen=True)
class OutgoingMessage:
    role: Role
    content: str

    @classmethod
    def from_turn(cls, turn: Turn) -> OutgoingMessage:
        return cls(role=turn.role, content=turn.content)

    def to_wire(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class StreamEvent:
    delta: str | None = None
    terminal: bool = False
