"""Top-level package for ai-client-state."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .backends.ollama import OllamaClient
    from .client import (
        AIClient,
        ClientInitResult,
        ConversationInfo,
        HistoryEntry,
        InitErrorResponse,
        InitLimitation,
        MessageResponse,
        SendMessageOptions,
        StreamingHandler,
        wrap_streaming_handler,
    )
    from .config import StateSettings, ensure_config_dir, load_config
    from .events import EventBus, Events
    from .exceptions import (
        AIClientConnectionError,
        AIClientError,
        AIClientModelNotFoundError,
        AIClientStateError,
        AIClientValidationError,
        ClientInitError,
        ConfigValidationError,
        MessageInProgressError,
    )
    from .logging_utils import configure_logging
    from .manager import ClientStateManager, create_client_state_manager
    from .models import TEMP_CONVERSATION_ID, Conversation, Message

# Exported name -> defining submodule. Submodules are imported on first access
# so that importing the package does not pull in the optional Ollama client.
_EXPORTS: dict[str, str] = {
    "AIClient": "client",
    "ClientInitResult": "client",
    "ConversationInfo": "client",
    "HistoryEntry": "client",
    "InitErrorResponse": "client",
    "InitLimitation": "client",
    "MessageResponse": "client",
    "SendMessageOptions": "client",
    "StreamingHandler": "client",
    "wrap_streaming_handler": "client",
    "StateSettings": "config",
    "ensure_config_dir": "config",
    "load_config": "config",
    "EventBus": "events",
    "Events": "events",
    "AIClientConnectionError": "exceptions",
    "AIClientError": "exceptions",
    "AIClientModelNotFoundError": "exceptions",
    "AIClientStateError": "exceptions",
    "AIClientValidationError": "exceptions",
    "ClientInitError": "exceptions",
    "ConfigValidationError": "exceptions",
    "MessageInProgressError": "exceptions",
    "configure_logging": "logging_utils",
    "ClientStateManager": "manager",
    "create_client_state_manager": "manager",
    "TEMP_CONVERSATION_ID": "models",
    "Conversation": "models",
    "Message": "models",
    "OllamaClient": "backends.ollama",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep optional backend dependencies optional at import time."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(f".{module_name}", __name__)
    return getattr(module, name)
