"""Manager-wide state record and the single in-flight send guard."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import MessageInProgressError
from .store import ConversationStore

if TYPE_CHECKING:
    from .client import AIClient, InitLimitation
    from .models import Conversation


@dataclass
class ClientState:
    """Everything one state manager instance owns."""

    client: AIClient
    conversations: ConversationStore = field(default_factory=ConversationStore)
    active_conversation_id: str | None = None
    message_in_progress: bool = False
    is_initialized: bool = False
    is_initializing: bool = False
    history_loads: int = 0
    init_limitation: InitLimitation | None = None
    promotion_retry_count: int = 0

    @property
    def active_conversation(self) -> Conversation | None:
        return self.conversations.get(self.active_conversation_id)


class ConcurrencyGuard:
    """At most one send may be in flight per manager instance.

    Acquisition is synchronous so a second caller fails before the first
    caller reaches its next suspension point.
    """

    def __init__(self, state: ClientState) -> None:
        self._state = state

    @property
    def held(self) -> bool:
        return self._state.message_in_progress

    def acquire(self) -> None:
        if self._state.message_in_progress:
            raise MessageInProgressError()
        self._state.message_in_progress = True

    def release(self) -> None:
        self._state.message_in_progress = False
