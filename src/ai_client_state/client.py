"""Contract between the state manager and a backend-specific AI client.

Every backend (single-response HTTP, SSE token streams, ...) is adapted to the
``AIClient`` interface below. The state manager only ever talks to this
interface, so backend differences stay inside the client implementation.

Usage:
    class MyClient(AIClient):
        async def init(self) -> ClientInitResult:
            return ClientInitResult(conversations=[])

        async def send_message(self, conversation_id, message, options=None):
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from .models import DEFAULT_CONVERSATION_TITLE, utcnow

@dataclass
class MessageResponse:
    """A (partial or final) bot answer reported by the client."""

    message_id: str
    answer: str
    conversation_id: str
    additional_attributes: dict[str, Any] | None = None
    date: datetime | None = None


# A streaming chunk is either a whole-message snapshot or a raw text delta.
StreamChunk = Union[MessageResponse, str]
AfterChunk = Callable[[StreamChunk], None]


@dataclass(frozen=True)
class SendMessageOptions:
    """Typed options for a single send.

    ``after_chunk`` is always supplied by the state manager; the remaining
    fields are passed through to the client untouched.
    """

    stream: bool = False
    after_chunk: AfterChunk | None = None
    headers: dict[str, str] | None = None
    signal: Any | None = None
    request_payload: dict[str, Any] | None = None


@dataclass
class ConversationInfo:
    """Conversation metadata as reported by the backend."""

    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    locked: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class HistoryEntry:
    """One historical question/answer turn of a conversation."""

    message_id: str
    input: str
    answer: str
    date: datetime | str | None = None
    additional_attributes: dict[str, Any] | None = None


@dataclass(frozen=True)
class InitLimitation:
    """Soft degraded-mode signal reported during client initialization."""

    reason: str
    detail: str | None = None


@dataclass(frozen=True)
class InitErrorResponse:
    """Structured initialization error."""

    message: str
    status: int | None = None


@dataclass
class ClientInitResult:
    conversations: list[ConversationInfo] = field(default_factory=list)
    limitation: InitLimitation | None = None
    error: InitErrorResponse | None = None


class StreamingHandler(ABC):
    """Receives raw chunks while a streaming response is in progress."""

    @abstractmethod
    def on_chunk(self, chunk: Any, after_chunk: AfterChunk | None = None) -> None:
        """Handle a single chunk of streaming data."""

    def on_start(
        self, conversation_id: str | None = None, message_id: str | None = None
    ) -> None:
        return None

    def on_complete(self, final_chunk: Any) -> None:
        return None

    def on_error(self, error: BaseException) -> None:
        return None

    def on_abort(self) -> None:
        return None


class _WrappedStreamingHandler(StreamingHandler):
    def __init__(
        self,
        inner: StreamingHandler,
        before_chunk: Callable[[Any], None] | None,
        after_chunk: Callable[[Any], None] | None,
    ) -> None:
        self._inner = inner
        self._before_chunk = before_chunk
        self._after_chunk = after_chunk

    def on_chunk(self, chunk: Any, after_chunk: AfterChunk | None = None) -> None:
        if self._before_chunk is not None:
            self._before_chunk(chunk)
        self._inner.on_chunk(chunk, after_chunk)
        if self._after_chunk is not None:
            self._after_chunk(chunk)

    def on_start(
        self, conversation_id: str | None = None, message_id: str | None = None
    ) -> None:
        self._inner.on_start(conversation_id, message_id)

    def on_complete(self, final_chunk: Any) -> None:
        self._inner.on_complete(final_chunk)

    def on_error(self, error: BaseException) -> None:
        self._inner.on_error(error)

    def on_abort(self) -> None:
        self._inner.on_abort()


def wrap_streaming_handler(
    handler: StreamingHandler,
    before_chunk: Callable[[Any], None] | None = None,
    after_chunk: Callable[[Any], None] | None = None,
) -> StreamingHandler:
    """Decorate ``handler`` so extra callbacks run around each ``on_chunk``."""
    return _WrappedStreamingHandler(handler, before_chunk, after_chunk)


class AIClient(ABC):
    """Backend-specific client consumed by the state manager."""

    @abstractmethod
    async def init(self) -> ClientInitResult:
        """Return the conversations known to the backend."""

    @abstractmethod
    async def send_message(
        self,
        conversation_id: str,
        message: str,
        options: SendMessageOptions | None = None,
    ) -> MessageResponse | None:
        """Send ``message`` and return the final bot answer.

        When ``options.after_chunk`` is set the client may call it any number
        of times before returning.
        """

    @abstractmethod
    async def get_conversation_history(
        self, conversation_id: str
    ) -> list[HistoryEntry]:
        """Return prior turns of ``conversation_id``, oldest first."""

    @abstractmethod
    async def create_new_conversation(self) -> ConversationInfo:
        """Create a conversation on the backend and return its metadata."""

    async def health_check(self) -> Any:
        """Return the backend health payload, or None when unsupported."""
        return None

    def get_default_streaming_handler(self) -> StreamingHandler | None:
        return None

    async def get_service_status(self) -> Any:
        return None
