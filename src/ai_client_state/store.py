"""In-memory conversation store keyed by conversation id."""

from __future__ import annotations

from collections.abc import Iterator

from .client import ConversationInfo
from .models import DEFAULT_CONVERSATION_TITLE, Conversation, TEMP_CONVERSATION_ID


class ConversationStore:
    """Insertion-ordered mapping of conversation id to ``Conversation``.

    Only the state manager mutates the store; UI code reads it through the
    manager's accessors.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._conversations.values()))

    def get(self, conversation_id: str | None) -> Conversation | None:
        if conversation_id is None:
            return None
        return self._conversations.get(conversation_id)

    def ensure(
        self, conversation_id: str, title: str = DEFAULT_CONVERSATION_TITLE
    ) -> Conversation:
        """Return the conversation, creating an empty record when absent."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(id=conversation_id, title=title)
            self._conversations[conversation_id] = conversation
        return conversation

    def ensure_temporary(
        self, title: str = DEFAULT_CONVERSATION_TITLE
    ) -> Conversation:
        return self.ensure(TEMP_CONVERSATION_ID, title=title)

    def put(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = conversation
        return conversation

    def add_from_info(self, info: ConversationInfo) -> Conversation:
        """Seed a record from backend metadata; messages stay unloaded."""
        existing = self._conversations.get(info.id)
        if existing is not None:
            existing.title = info.title
            existing.locked = info.locked
            return existing
        return self.put(
            Conversation(
                id=info.id,
                title=info.title,
                locked=info.locked,
                created_at=info.created_at,
            )
        )

    def remove(self, conversation_id: str) -> Conversation | None:
        return self._conversations.pop(conversation_id, None)

    def lock_all_except(self, conversation_id: str) -> None:
        for conversation in self._conversations.values():
            if conversation.id != conversation_id:
                conversation.locked = True
