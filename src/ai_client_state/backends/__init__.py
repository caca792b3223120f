"""Bundled AIClient implementations."""

from __future__ import annotations

from .ollama import OllamaClient

__all__ = ["OllamaClient"]
