"""Domain exception hierarchy for the conversation state manager and its clients."""

from __future__ import annotations

from typing import Any


class AIClientStateError(RuntimeError):
    """Base class for all domain-level state manager errors."""


class MessageInProgressError(AIClientStateError):
    """Raised when a send is attempted while another send is still in flight."""

    def __init__(self, message: str = "A message is already being sent.") -> None:
        super().__init__(message)


class ClientInitError(AIClientStateError):
    """Raised when the client collaborator reports a structured init error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class AIClientError(AIClientStateError):
    """Raised by client implementations when a backend call fails."""

    def __init__(
        self,
        status: int,
        status_text: str,
        message: str,
        data: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.status_text = status_text
        self.message = message
        self.data = data


class AIClientValidationError(AIClientError):
    """Raised when the backend rejects a request as invalid (HTTP 422)."""

    def __init__(self, validation_errors: list[dict[str, Any]]) -> None:
        super().__init__(
            422, "Validation Error", "Request validation failed", validation_errors
        )
        self.validation_errors = validation_errors


class AIClientConnectionError(AIClientError):
    """Raised when the backend host cannot be reached."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(503, "Service Unavailable", message, data)


class AIClientModelNotFoundError(AIClientError):
    """Raised when the configured model is unavailable on the backend."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(404, "Not Found", message, data)


class ConfigValidationError(AIClientStateError):
    """Raised when configuration cannot be validated safely."""
