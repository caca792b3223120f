"""Conversation state manager: the single owner of conversation and message state.

UI bindings call the public coroutines below, subscribe to ``Events`` and
re-read state through the accessors when notified. Network work is delegated
to the injected ``AIClient``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime
import json
import logging
from typing import Any

from .client import (
    AIClient,
    HistoryEntry,
    InitLimitation,
    MessageResponse,
    SendMessageOptions,
)
from .config import StateSettings
from .events import EventBus, Events
from .exceptions import ClientInitError
from .models import (
    Conversation,
    Message,
    TEMP_CONVERSATION_ID,
    is_temporary_id,
    new_message_id,
    utcnow,
)
from .promotion import ConversationPromotion
from .state import ClientState, ConcurrencyGuard
from .streaming import StreamingCoordinator

LOGGER = logging.getLogger(__name__)


def _error_text(error: Any) -> str:
    """Render an init failure as user-visible text."""
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    try:
        return json.dumps(error, default=str)
    except (TypeError, ValueError):
        return repr(error)


def _parse_date(value: datetime | str | None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            LOGGER.debug(
                "state.history.bad_date",
                extra={"event": "state.history.bad_date", "value": value},
            )
    return utcnow()


def _history_to_messages(entries: list[HistoryEntry]) -> list[Message]:
    messages: list[Message] = []
    for entry in entries:
        date = _parse_date(entry.date)
        messages.append(
            Message(id=new_message_id(), answer=entry.input, role="user", date=date)
        )
        messages.append(
            Message(
                id=entry.message_id,
                answer=entry.answer,
                role="bot",
                additional_attributes=entry.additional_attributes,
                date=date,
            )
        )
    return messages


class ClientStateManager:
    """Owns conversations, arbitrates sends and publishes change events."""

    def __init__(
        self,
        client: AIClient,
        settings: StateSettings | None = None,
    ) -> None:
        self.settings = settings or StateSettings()
        self._state = ClientState(client=client)
        self._events = EventBus()
        self._guard = ConcurrencyGuard(self._state)
        self._sending: Conversation | None = None
        self._promotion = ConversationPromotion(
            self._state,
            self._events.notify,
            max_retries=self.settings.promotion_max_retries,
            placeholder_title=self.settings.temporary_conversation_title,
            failure_message=self.settings.promotion_error_message,
        )

    # -- accessors -----------------------------------------------------------

    def get_state(self) -> ClientState:
        return self._state

    def get_client(self) -> AIClient:
        return self._state.client

    def is_initialized(self) -> bool:
        return self._state.is_initialized

    def is_initializing(self) -> bool:
        state = self._state
        return state.is_initializing or state.history_loads > 0

    def get_message_in_progress(self) -> bool:
        return self._state.message_in_progress

    def get_init_limitation(self) -> InitLimitation | None:
        return self._state.init_limitation

    def get_active_conversation_id(self) -> str | None:
        return self._state.active_conversation_id

    def get_active_conversation(self) -> Conversation | None:
        return self._state.active_conversation

    def get_active_conversation_messages(self) -> list[Message]:
        conversation = self._state.active_conversation
        return list(conversation.messages) if conversation is not None else []

    def get_conversations(self) -> list[Conversation]:
        return list(self._state.conversations)

    def is_temporary_conversation(self, conversation_id: str | None = None) -> bool:
        """Return whether ``conversation_id`` (default: the active one) is temporary."""
        if conversation_id is None:
            conversation_id = self._state.active_conversation_id
        return is_temporary_id(conversation_id)

    def subscribe(self, event: Events, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to ``event``; call the returned function to unsubscribe."""
        return self._events.subscribe(event, callback)

    def notify(self, event: Events) -> None:
        self._events.notify(event)

    def _notify_all(self) -> None:
        for event in Events:
            self._events.notify(event)

    # -- initialization --------------------------------------------------------

    async def init(self) -> None:
        """Load the backend's conversations; a no-op once started.

        On failure the manager still ends up initialized with a bot message
        describing the error in the active conversation, then re-raises.
        """
        state = self._state
        if state.is_initialized or state.is_initializing:
            return

        state.is_initializing = True
        self.notify(Events.INITIALIZING_MESSAGES)
        self.notify(Events.IN_PROGRESS)
        LOGGER.info("state.init.start", extra={"event": "state.init.start"})

        try:
            result = await state.client.init()
            if result.error is not None:
                raise ClientInitError(result.error.message, result.error.status)
        except Exception as exc:
            state.is_initialized = True
            state.is_initializing = False
            self._attach_init_error(exc)
            LOGGER.error(
                "state.init.failed",
                extra={
                    "event": "state.init.failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            self._notify_all()
            raise

        for info in result.conversations:
            state.conversations.add_from_info(info)
        state.is_initialized = True
        state.is_initializing = False
        LOGGER.info(
            "state.init.complete",
            extra={
                "event": "state.init.complete",
                "conversations": len(result.conversations),
                "limited": result.limitation is not None,
            },
        )
        if result.limitation is not None:
            state.init_limitation = result.limitation
            self.notify(Events.INIT_LIMITATION)
        self.notify(Events.INITIALIZING_MESSAGES)
        self.notify(Events.CONVERSATIONS)

    def _attach_init_error(self, error: Any) -> None:
        conversation = self._state.active_conversation
        if conversation is None:
            conversation = self._activate_temporary()
        conversation.messages.append(Message.bot(_error_text(error)))

    def _activate_temporary(self) -> Conversation:
        conversation = self._state.conversations.ensure_temporary(
            title=self.settings.temporary_conversation_title
        )
        self._state.active_conversation_id = conversation.id
        return conversation

    # -- active conversation ---------------------------------------------------

    async def set_active_conversation_id(self, conversation_id: str) -> None:
        """Activate ``conversation_id`` and load its history from the backend.

        History failures are logged and swallowed; the conversation stays usable.
        """
        state = self._state
        state.active_conversation_id = conversation_id
        state.conversations.ensure(
            conversation_id, title=self.settings.temporary_conversation_title
        )
        self.notify(Events.ACTIVE_CONVERSATION)
        self.notify(Events.CONVERSATIONS)

        if is_temporary_id(conversation_id):
            return

        state.history_loads += 1
        self.notify(Events.INITIALIZING_MESSAGES)
        try:
            history = await state.client.get_conversation_history(conversation_id)
            # The record may have been promoted or replaced while awaiting.
            conversation = state.conversations.get(conversation_id)
            if conversation is not None and conversation is self._sending:
                LOGGER.info(
                    "state.history.deferred",
                    extra={
                        "event": "state.history.deferred",
                        "conversation_id": conversation_id,
                    },
                )
            elif conversation is not None and history:
                conversation.messages = _history_to_messages(history)
        except Exception as exc:  # noqa: BLE001 - missing history is not fatal.
            LOGGER.warning(
                "state.history.failed",
                extra={
                    "event": "state.history.failed",
                    "conversation_id": conversation_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
        finally:
            state.history_loads -= 1
            self.notify(Events.INITIALIZING_MESSAGES)
            self.notify(Events.MESSAGE)

    # -- sending ---------------------------------------------------------------

    async def send_message(
        self,
        query: str,
        options: SendMessageOptions | None = None,
    ) -> MessageResponse | None:
        """Send ``query`` in the active conversation.

        Returns the client's response, or None when nothing was sent to the
        backend (empty query, locked conversation, promotion exhausted).

        Raises:
            MessageInProgressError: another send has not finished yet
            Exception: whatever the client raised; the placeholder is rolled back
        """
        if not query or not query.strip():
            return None

        self._guard.acquire()
        self.notify(Events.IN_PROGRESS)
        try:
            return await self._send(query, options or SendMessageOptions())
        finally:
            self._guard.release()
            self.notify(Events.IN_PROGRESS)

    async def _send(
        self, query: str, options: SendMessageOptions
    ) -> MessageResponse | None:
        state = self._state
        if state.active_conversation is None:
            self._activate_temporary()
            self.notify(Events.ACTIVE_CONVERSATION)
            self.notify(Events.CONVERSATIONS)

        conversation = self._require_active()
        if conversation.locked:
            self._reject_locked(conversation, query)
            return None

        if conversation.is_temporary:
            promoted = await self._promotion.promote_temporary()
            if not promoted:
                conversation = self._require_active()
                self._append_user_message(conversation, query)
                self._promotion.report_exhausted(conversation)
                return None

        conversation = self._require_active()
        if conversation.locked:
            self._reject_locked(conversation, query)
            return None
        self._append_user_message(conversation, query)

        coordinator = StreamingCoordinator(
            conversation, lambda: self.notify(Events.MESSAGE)
        )
        coordinator.open()
        conversation_id = conversation.id
        LOGGER.info(
            "state.send.start",
            extra={
                "event": "state.send.start",
                "conversation_id": conversation_id,
                "stream": options.stream,
            },
        )
        self._sending = conversation
        try:
            response = await state.client.send_message(
                conversation_id,
                query,
                replace(options, after_chunk=coordinator.handle_chunk),
            )
        except BaseException as exc:
            coordinator.rollback()
            LOGGER.warning(
                "state.send.failed",
                extra={
                    "event": "state.send.failed",
                    "conversation_id": conversation_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            self.notify(Events.MESSAGE)
            raise
        finally:
            self._sending = None

        if response is None and not coordinator.placeholder.answer:
            coordinator.rollback()
        else:
            coordinator.finalize(response)
        if (
            response is not None
            and response.conversation_id
            and response.conversation_id != conversation_id
            and not is_temporary_id(response.conversation_id)
        ):
            self._promotion.promote_by_response(
                conversation_id, response.conversation_id
            )
        LOGGER.info(
            "state.send.complete",
            extra={
                "event": "state.send.complete",
                "conversation_id": state.active_conversation_id,
                "chunks": coordinator.chunk_count,
            },
        )
        self.notify(Events.MESSAGE)
        return response

    def _reject_locked(self, conversation: Conversation, query: str) -> None:
        self._append_user_message(conversation, query)
        conversation.messages.append(Message.bot(self.settings.locked_message))
        LOGGER.info(
            "state.send.locked",
            extra={"event": "state.send.locked", "conversation_id": conversation.id},
        )
        self.notify(Events.MESSAGE)

    def _require_active(self) -> Conversation:
        conversation = self._state.active_conversation
        if conversation is None:
            conversation = self._activate_temporary()
        return conversation

    def _append_user_message(self, conversation: Conversation, query: str) -> None:
        if conversation.is_empty:
            conversation.title = query
        conversation.messages.append(Message.user(query))
        self.notify(Events.MESSAGE)

    # -- new conversations -----------------------------------------------------

    async def create_new_conversation(self, force: bool = False) -> Conversation:
        """Start a new conversation and lock every other one.

        Without ``force`` an empty active conversation is reused instead of
        asking the backend for a new one.
        """
        state = self._state
        active = state.active_conversation
        if not force and (active is None or active.is_empty):
            if active is None:
                active = self._activate_temporary()
                self.notify(Events.ACTIVE_CONVERSATION)
                self.notify(Events.CONVERSATIONS)
            return active

        info = await state.client.create_new_conversation()
        conversation = state.conversations.add_from_info(info)
        state.conversations.lock_all_except(conversation.id)
        LOGGER.info(
            "state.conversation.created",
            extra={"event": "state.conversation.created", "conversation_id": info.id},
        )
        await self.set_active_conversation_id(conversation.id)
        return conversation


def create_client_state_manager(
    client: AIClient,
    settings: StateSettings | Mapping[str, Any] | None = None,
) -> ClientStateManager:
    """Build an independent state manager around ``client``.

    ``settings`` may be a ``StateSettings`` instance or the ``[state]`` section
    returned by ``load_config``.
    """
    if settings is not None and not isinstance(settings, StateSettings):
        settings = StateSettings.model_validate(dict(settings))
    return ClientStateManager(client, settings)


__all__ = [
    "ClientStateManager",
    "TEMP_CONVERSATION_ID",
    "create_client_state_manager",
]
