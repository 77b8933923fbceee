"""Provider adapters. Importing this package registers every adapter."""

from . import claude, codex, copilot, cursor, gemini, opencode  # noqa: F401
from ..core.adapter import adapter_registry

__all__ = ["adapter_registry"]
