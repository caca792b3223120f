"""Accumulates streamed answer chunks into the in-flight placeholder message."""

from __future__ import annotations

from collections.abc import Callable
import logging

from .client import MessageResponse, StreamChunk
from .models import Conversation, Message

LOGGER = logging.getLogger(__name__)


class StreamingCoordinator:
    """Owns the placeholder bot message for a single send.

    The placeholder is appended to the conversation when the coordinator is
    opened and is then mutated in place, so every subscriber re-reading the
    conversation after a message-changed notification sees the latest answer.
    """

    def __init__(
        self,
        conversation: Conversation,
        on_update: Callable[[], None],
    ) -> None:
        self._conversation = conversation
        self._on_update = on_update
        self.placeholder = Message.bot()
        self.chunk_count = 0
        self._open = False

    def open(self) -> Message:
        """Append the empty placeholder to the conversation."""
        self._conversation.messages.append(self.placeholder)
        self._open = True
        return self.placeholder

    def handle_chunk(self, chunk: StreamChunk) -> None:
        """Apply one chunk to the placeholder and notify subscribers.

        Whole-message chunks overwrite the answer; plain text chunks are
        appended to it.
        """
        if not self._open:
            LOGGER.debug(
                "streaming.chunk.ignored",
                extra={"event": "streaming.chunk.ignored"},
            )
            return
        if isinstance(chunk, MessageResponse):
            self._apply(chunk)
        elif isinstance(chunk, str):
            self.placeholder.answer += chunk
        else:
            LOGGER.warning(
                "streaming.chunk.unsupported",
                extra={
                    "event": "streaming.chunk.unsupported",
                    "chunk_type": type(chunk).__name__,
                },
            )
            return
        self.chunk_count += 1
        self._on_update()

    def finalize(self, response: MessageResponse | None) -> Message:
        """Overwrite the placeholder with the resolved response."""
        if response is not None:
            self._apply(response)
            if response.date is not None:
                self.placeholder.date = response.date
        self._open = False
        return self.placeholder

    def rollback(self) -> None:
        """Remove the placeholder from the conversation after a failed send."""
        self._open = False
        messages = self._conversation.messages
        for index in range(len(messages) - 1, -1, -1):
            if messages[index] is self.placeholder:
                del messages[index]
                break

    def _apply(self, response: MessageResponse) -> None:
        self.placeholder.answer = response.answer
        if response.message_id:
            self.placeholder.id = response.message_id
        self.placeholder.additional_attributes = response.additional_attributes
