"""Promotion of conversations from a local identifier to a backend identifier.

Both promotion triggers use the same transplant: the messages of the source
record move to the target record, the active id follows them, and the source
record is deleted.
"""

from __future__ import annotations

from collections.abc import Callable
import logging

from .client import ConversationInfo
from .events import Events
from .models import Conversation, Message, TEMP_CONVERSATION_ID, is_temporary_id
from .state import ClientState

LOGGER = logging.getLogger(__name__)


class ConversationPromotion:
    """Moves conversations from temporary or stale ids to backend-confirmed ids."""

    def __init__(
        self,
        state: ClientState,
        notify: Callable[[Events], None],
        *,
        max_retries: int = 2,
        placeholder_title: str,
        failure_message: str,
    ) -> None:
        self._state = state
        self._notify = notify
        self.max_retries = max(1, max_retries)
        self._placeholder_title = placeholder_title
        self._failure_message = failure_message

    async def promote_temporary(self) -> bool:
        """Create a backend conversation for the temporary one and move into it.

        Returns False once ``max_retries`` consecutive attempts have failed;
        the temporary conversation is left in place in that case.
        """
        while True:
            try:
                info = await self._state.client.create_new_conversation()
                if is_temporary_id(info.id):
                    raise ValueError("Backend returned the temporary conversation id.")
            except Exception as exc:  # noqa: BLE001 - any backend failure counts as an attempt.
                self._state.promotion_retry_count += 1
                LOGGER.warning(
                    "promotion.attempt.failed",
                    extra={
                        "event": "promotion.attempt.failed",
                        "attempt": self._state.promotion_retry_count,
                        "max_retries": self.max_retries,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                if self._state.promotion_retry_count >= self.max_retries:
                    return False
                continue

            self._state.promotion_retry_count = 0
            self.transplant(TEMP_CONVERSATION_ID, info.id, info)
            LOGGER.info(
                "promotion.temporary.complete",
                extra={
                    "event": "promotion.temporary.complete",
                    "conversation_id": info.id,
                },
            )
            return True

    def report_exhausted(self, conversation: Conversation) -> Message:
        """Append the user-visible promotion failure message and reset the counter."""
        message = Message.bot(self._failure_message)
        conversation.messages.append(message)
        self._state.promotion_retry_count = 0
        LOGGER.error(
            "promotion.retries.exhausted",
            extra={
                "event": "promotion.retries.exhausted",
                "conversation_id": conversation.id,
                "max_retries": self.max_retries,
            },
        )
        self._notify(Events.MESSAGE)
        return message

    def promote_by_response(self, original_id: str, new_id: str) -> Conversation:
        """Move a conversation to the id a backend assigned in its response."""
        conversation = self.transplant(original_id, new_id)
        LOGGER.info(
            "promotion.response.complete",
            extra={
                "event": "promotion.response.complete",
                "original_id": original_id,
                "conversation_id": new_id,
            },
        )
        return conversation

    def transplant(
        self,
        source_id: str,
        target_id: str,
        info: ConversationInfo | None = None,
    ) -> Conversation:
        store = self._state.conversations
        source = store.remove(source_id)
        target = store.get(target_id)
        if target is None:
            target = Conversation(id=target_id)
            if info is not None:
                target.title = info.title
                target.locked = info.locked
                target.created_at = info.created_at
            elif source is not None:
                target.title = source.title
                target.created_at = source.created_at
            store.put(target)

        if source is not None:
            target.messages.extend(source.messages)
            target.locked = target.locked or source.locked
            if source.title != self._placeholder_title:
                target.title = source.title

        if self._state.active_conversation_id == source_id:
            self._state.active_conversation_id = target_id
        self._notify(Events.ACTIVE_CONVERSATION)
        self._notify(Events.CONVERSATIONS)
        return target
