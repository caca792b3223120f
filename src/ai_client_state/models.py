"""Conversation and message records owned by the state manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

# Identifier of a conversation that does not exist on the backend yet.
TEMP_CONVERSATION_ID = "__temp_conversation__"

DEFAULT_CONVERSATION_TITLE = "New conversation"

Role = Literal["user", "bot"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return str(uuid4())


def is_temporary_id(conversation_id: str | None) -> bool:
    """Return True when ``conversation_id`` is the temporary sentinel."""
    return conversation_id == TEMP_CONVERSATION_ID


@dataclass
class Message:
    """A single user query or bot answer inside a conversation."""

    id: str
    answer: str
    role: Role
    additional_attributes: dict[str, Any] | None = None
    date: datetime = field(default_factory=utcnow)

    @classmethod
    def user(cls, query: str) -> Message:
        return cls(id=new_message_id(), answer=query, role="user")

    @classmethod
    def bot(
        cls,
        answer: str = "",
        message_id: str | None = None,
        additional_attributes: dict[str, Any] | None = None,
    ) -> Message:
        return cls(
            id=message_id or new_message_id(),
            answer=answer,
            role="bot",
            additional_attributes=additional_attributes,
        )


@dataclass
class Conversation:
    """An ordered sequence of messages under a backend or temporary identifier."""

    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: list[Message] = field(default_factory=list)
    locked: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.id)

    @property
    def is_empty(self) -> bool:
        return not self.messages
