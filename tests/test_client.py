"""Tests for the AIClient contract helpers."""

from __future__ import annotations

from typing import Any
import unittest

from ai_client_state.client import (
    AIClient,
    SendMessageOptions,
    StreamingHandler,
    wrap_streaming_handler,
)

from helpers import FakeClient


class _RecordingHandler(StreamingHandler):
    def __init__(self, calls: list[str]) -> None:
        self.calls = calls

    def on_chunk(self, chunk: Any, after_chunk: Any = None) -> None:
        self.calls.append(f"chunk:{chunk}")
        if after_chunk is not None:
            after_chunk(chunk)

    def on_complete(self, final_chunk: Any) -> None:
        self.calls.append(f"complete:{final_chunk}")


class StreamingHandlerTests(unittest.TestCase):
    """Validate wrap_streaming_handler() ordering and delegation."""

    def test_wrapped_handler_runs_hooks_around_chunk(self) -> None:
        calls: list[str] = []
        wrapped = wrap_streaming_handler(
            _RecordingHandler(calls),
            before_chunk=lambda chunk: calls.append(f"before:{chunk}"),
            after_chunk=lambda chunk: calls.append(f"after:{chunk}"),
        )

        wrapped.on_chunk("a", lambda chunk: calls.append(f"inner-after:{chunk}"))
        wrapped.on_complete("done")
        wrapped.on_abort()

        self.assertEqual(
            calls,
            ["before:a", "chunk:a", "inner-after:a", "after:a", "complete:done"],
        )

    def test_streaming_handler_requires_on_chunk(self) -> None:
        with self.assertRaises(TypeError):
            StreamingHandler()  # type: ignore[abstract]


class AIClientContractTests(unittest.IsolatedAsyncioTestCase):
    """Validate optional members of the AIClient interface."""

    async def test_optional_members_have_defaults(self) -> None:
        client = FakeClient()
        self.assertIsNone(client.get_default_streaming_handler())
        self.assertIsNone(await client.get_service_status())
        self.assertEqual(await client.health_check(), {"status": "ok"})

    async def test_health_check_is_optional(self) -> None:
        class MinimalClient(AIClient):
            async def init(self) -> Any:
                return None

            async def send_message(
                self, conversation_id: str, message: str, options: Any = None
            ) -> Any:
                return None

            async def get_conversation_history(self, conversation_id: str) -> Any:
                return []

            async def create_new_conversation(self) -> Any:
                return None

        client = MinimalClient()
        self.assertIsNone(await client.health_check())

    def test_client_interface_is_abstract(self) -> None:
        with self.assertRaises(TypeError):
            AIClient()  # type: ignore[abstract]

    def test_send_options_are_immutable(self) -> None:
        options = SendMessageOptions(stream=True)
        with self.assertRaises(AttributeError):
            options.stream = False  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
