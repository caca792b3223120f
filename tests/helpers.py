"""Deterministic fake collaborators shared by the state manager tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from ai_client_state.client import (
    AIClient,
    ClientInitResult,
    ConversationInfo,
    HistoryEntry,
    MessageResponse,
    SendMessageOptions,
    StreamChunk,
)


class FakeClient(AIClient):
    """Scriptable AIClient that records every call it receives."""

    def __init__(
        self,
        *,
        init_result: ClientInitResult | BaseException | None = None,
        reply: MessageResponse | Callable[[str, str], MessageResponse] | None = None,
        chunks: list[StreamChunk] | None = None,
        send_error: BaseException | None = None,
        history: dict[str, list[HistoryEntry] | BaseException] | None = None,
        create_ids: list[str] | None = None,
        create_failures: int = 0,
    ) -> None:
        self.init_result = init_result or ClientInitResult()
        self.reply = reply
        self.chunks = chunks or []
        self.send_error = send_error
        self.history = history or {}
        self.create_ids = list(create_ids or [])
        self.create_failures = create_failures
        self.gate: asyncio.Event | None = None

        self.init_calls = 0
        self.create_calls = 0
        self.send_calls: list[tuple[str, str, SendMessageOptions | None]] = []
        self.history_calls: list[str] = []
        self.on_send: Callable[[], None] | None = None

    async def init(self) -> ClientInitResult:
        self.init_calls += 1
        await asyncio.sleep(0)
        if isinstance(self.init_result, BaseException):
            raise self.init_result
        return self.init_result

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        options: SendMessageOptions | None = None,
    ) -> MessageResponse:
        self.send_calls.append((conversation_id, message, options))
        if self.on_send is not None:
            self.on_send()
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        for chunk in self.chunks:
            if options is not None and options.after_chunk is not None:
                options.after_chunk(chunk)
        if self.send_error is not None:
            raise self.send_error
        if callable(self.reply):
            return self.reply(conversation_id, message)
        if self.reply is not None:
            return self.reply
        return MessageResponse(
            message_id=f"m{len(self.send_calls)}",
            answer=f"answer to {message}",
            conversation_id=conversation_id,
        )

    async def get_conversation_history(
        self, conversation_id: str
    ) -> list[HistoryEntry]:
        self.history_calls.append(conversation_id)
        await asyncio.sleep(0)
        entries = self.history.get(conversation_id, [])
        if isinstance(entries, BaseException):
            raise entries
        return list(entries)

    async def create_new_conversation(self) -> ConversationInfo:
        self.create_calls += 1
        await asyncio.sleep(0)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise RuntimeError("create failed")
        new_id = self.create_ids.pop(0) if self.create_ids else f"real-{self.create_calls}"
        return ConversationInfo(id=new_id, title="Backend title")

    async def health_check(self) -> Any:
        return {"status": "ok"}


class EventRecorder:
    """Collects event kinds in the order they were delivered."""

    def __init__(self, manager: Any, events: Any) -> None:
        self.seen: list[Any] = []
        for event in events:
            manager.subscribe(event, lambda event=event: self.seen.append(event))

    def count(self, event: Any) -> int:
        return sum(1 for seen in self.seen if seen == event)
