"""AIClient implementation backed by a local Ollama server.

Ollama keeps no conversations of its own, so conversations and their history
live inside the client; each send replays the conversation transcript.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Any
from uuid import uuid4

import httpx
from ollama import AsyncClient

from ..client import (
    AIClient,
    ClientInitResult,
    ConversationInfo,
    HistoryEntry,
    InitErrorResponse,
    InitLimitation,
    MessageResponse,
    SendMessageOptions,
)
from ..config import OllamaSettings
from ..exceptions import (
    AIClientConnectionError,
    AIClientError,
    AIClientModelNotFoundError,
)
from ..models import DEFAULT_CONVERSATION_TITLE, utcnow

LOGGER = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.NetworkError,
    ConnectionError,
)


@dataclass
class _ConversationLog:
    info: ConversationInfo
    turns: list[HistoryEntry] = field(default_factory=list)


class OllamaClient(AIClient):
    """Chat with an Ollama model through ``ollama.AsyncClient``."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.2",
        system_prompt: str = "",
        timeout: int = 120,
        retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        default_title: str = DEFAULT_CONVERSATION_TITLE,
        client: Any | None = None,
    ) -> None:
        self.host = host
        self.model = model
        self.system_prompt = system_prompt
        self.retries = retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.default_title = default_title
        if client is not None:
            self._client = client
        else:
            self._client = AsyncClient(host=host, timeout=timeout)
        self._conversations: dict[str, _ConversationLog] = {}

    @classmethod
    def from_settings(
        cls, settings: OllamaSettings | Mapping[str, Any], client: Any | None = None
    ) -> OllamaClient:
        """Build a client from the ``[ollama]`` config section."""
        if not isinstance(settings, OllamaSettings):
            settings = OllamaSettings.model_validate(dict(settings))
        return cls(
            host=settings.host,
            model=settings.model,
            system_prompt=settings.system_prompt,
            timeout=settings.timeout,
            retries=settings.retries,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            default_title=settings.default_title,
            client=client,
        )

    # -- AIClient ----------------------------------------------------------------

    async def init(self) -> ClientInitResult:
        conversations = [log.info for log in self._conversations.values()]
        try:
            available = await self.list_models()
        except Exception as exc:  # noqa: BLE001 - reported as a structured init error.
            mapped = self._map_exception(exc)
            return ClientInitResult(
                conversations=conversations,
                error=InitErrorResponse(message=str(mapped), status=mapped.status),
            )

        if not any(self._model_name_matches(self.model, name) for name in available):
            LOGGER.warning(
                "ollama.model.missing",
                extra={"event": "ollama.model.missing", "model": self.model},
            )
            return ClientInitResult(
                conversations=conversations,
                limitation=InitLimitation(
                    reason="model-unavailable",
                    detail=f"Model {self.model!r} is not available on {self.host}.",
                ),
            )
        return ClientInitResult(conversations=conversations)

    async def create_new_conversation(self) -> ConversationInfo:
        info = ConversationInfo(id=str(uuid4()), title=self.default_title)
        self._conversations[info.id] = _ConversationLog(info=info)
        return info

    async def get_conversation_history(
        self, conversation_id: str
    ) -> list[HistoryEntry]:
        log = self._conversations.get(conversation_id)
        return list(log.turns) if log is not None else []

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        options: SendMessageOptions | None = None,
    ) -> MessageResponse:
        opts = options or SendMessageOptions()
        log = self._conversations.get(conversation_id)
        if log is None:
            log = _ConversationLog(
                info=ConversationInfo(id=conversation_id, title=self.default_title)
            )
            self._conversations[conversation_id] = log

        request_messages = self._build_context(log, message)
        message_id = str(uuid4())

        for attempt in range(self.retries + 1):
            try:
                answer = await self._chat_once(
                    request_messages, conversation_id, message_id, opts
                )
                break
            except asyncio.CancelledError:
                LOGGER.info(
                    "ollama.request.cancelled",
                    extra={"event": "ollama.request.cancelled"},
                )
                raise
            except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
                mapped_exc = self._map_exception(exc)
                LOGGER.warning(
                    "ollama.request.retry",
                    extra={
                        "event": "ollama.request.retry",
                        "attempt": attempt + 1,
                        "error_type": mapped_exc.__class__.__name__,
                    },
                )
                if attempt >= self.retries:
                    raise mapped_exc from exc
                await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))

        response = MessageResponse(
            message_id=message_id,
            answer=answer,
            conversation_id=conversation_id,
            additional_attributes={"model": self.model},
            date=utcnow(),
        )
        log.turns.append(
            HistoryEntry(
                message_id=message_id,
                input=message,
                answer=answer,
                date=response.date,
                additional_attributes=response.additional_attributes,
            )
        )
        return response

    async def health_check(self) -> Any:
        try:
            return await self._client.list()
        except Exception as exc:
            raise self._map_exception(exc) from exc

    async def get_service_status(self) -> Any:
        try:
            return await self._client.ps()
        except Exception as exc:
            raise self._map_exception(exc) from exc

    # -- helpers -------------------------------------------------------------------

    def _build_context(
        self, log: _ConversationLog, message: str
    ) -> list[dict[str, str]]:
        context: list[dict[str, str]] = []
        if self.system_prompt:
            context.append({"role": "system", "content": self.system_prompt})
        for turn in log.turns:
            context.append({"role": "user", "content": turn.input})
            context.append({"role": "assistant", "content": turn.answer})
        context.append({"role": "user", "content": message})
        return context

    async def _chat_once(
        self,
        request_messages: list[dict[str, str]],
        conversation_id: str,
        message_id: str,
        options: SendMessageOptions,
    ) -> str:
        if not options.stream:
            response = await self._client.chat(
                model=self.model, messages=request_messages, stream=False
            )
            answer = self._extract_chunk_text(response)
            if options.after_chunk is not None:
                options.after_chunk(
                    MessageResponse(
                        message_id=message_id,
                        answer=answer,
                        conversation_id=conversation_id,
                    )
                )
            return answer

        answer = ""
        stream = await self._client.chat(
            model=self.model, messages=request_messages, stream=True
        )
        async for chunk in stream:
            text = self._extract_chunk_text(chunk)
            if not text:
                continue
            answer += text
            if options.after_chunk is not None:
                options.after_chunk(
                    MessageResponse(
                        message_id=message_id,
                        answer=answer,
                        conversation_id=conversation_id,
                    )
                )
        return answer

    async def list_models(self) -> list[str]:
        """Return available model names from Ollama."""
        response = await self._client.list()
        models: Any = None
        if hasattr(response, "models"):
            models = response.models
        elif isinstance(response, dict):
            models = response.get("models")

        names: list[str] = []
        for model in models or []:
            for key in ("name", "model"):
                if isinstance(model, dict):
                    value = model.get(key)
                else:
                    value = getattr(model, key, None)
                if isinstance(value, str) and value.strip():
                    names.append(value.strip())
                    break
        return names

    @staticmethod
    def _model_name_matches(requested_model: str, available_model: str) -> bool:
        requested = requested_model.strip().lower()
        available = available_model.strip().lower()
        if requested == available:
            return True
        if ":" not in requested and available.startswith(f"{requested}:"):
            return True
        return False

    @staticmethod
    def _extract_chunk_text(chunk: Any) -> str:
        """Return ``message.content`` from an SDK object or a plain dict chunk."""
        message_obj = getattr(chunk, "message", None)
        if message_obj is None and isinstance(chunk, dict):
            message_obj = chunk.get("message")
        if isinstance(message_obj, dict):
            content = message_obj.get("content")
        else:
            content = getattr(message_obj, "content", None)
        return content if isinstance(content, str) else ""

    def _map_exception(self, exc: Exception) -> AIClientError:
        if isinstance(exc, AIClientError):
            return exc

        if isinstance(exc, _CONNECTION_ERRORS):
            return AIClientConnectionError(
                f"Unable to connect to Ollama host {self.host}."
            )

        lower_message = str(exc).lower()
        status = getattr(exc, "status_code", None)
        if status == 404 or ("model" in lower_message and "not found" in lower_message):
            return AIClientModelNotFoundError(
                f"Model {self.model!r} was not found on {self.host}."
            )

        return AIClientError(
            status if isinstance(status, int) else 500,
            type(exc).__name__,
            f"Request to Ollama at {self.host} failed: {exc}",
        )
