"""lorevault: bridge a chat host's lifecycle events to the LoreVault memory service."""

from .bridge import EventBridge
from .client import LoreVaultClient
from .config import FileSettingsStore, MemorySettingsStore, load_settings
from .events import EventHub, PromptRegistry
from .types import (
    AuthenticationError,
    ChatEntry,
    ChatEvent,
    ChatMessage,
    ConfigurationError,
    HostContext,
    ImportReport,
    LoreVaultError,
    QuotaExceededError,
    Settings,
    TransientError,
)

__version__ = "0.1.0"

__all__ = [
    "EventBridge",
    "LoreVaultClient",
    "EventHub",
    "PromptRegistry",
    "FileSettingsStore",
    "MemorySettingsStore",
    "load_settings",
    "AuthenticationError",
    "ChatEntry",
    "ChatEvent",
    "ChatMessage",
    "ConfigurationError",
    "HostContext",
    "ImportReport",
    "LoreVaultError",
    "QuotaExceededError",
    "Settings",
    "TransientError",
]
