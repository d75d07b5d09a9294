"""All dataclasses, Protocols, and error types for lorevault."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Literal, Protocol, runtime_checkable


DEFAULT_API_BASE = "https://ukkkdooyoerpgwpctkqi.supabase.co/functions/v1"

# Public anon token of the hosted service (safe to ship, scoped to edge functions).
DEFAULT_ANON_KEY = (
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.eyJpc3MiOiJzdXBhYmFzZSIsInJlZiI6InVra2tkb295b2Vy"
    "cGd3cGN0a3FpIiwicm9sZSI6ImFub24iLCJpYXQiOjE3NjQ5MTA0MzIsImV4cCI6MjA4MDQ4NjQzMn0."
    "Q08-3CaAht1Ppmhjm0rP5Ss_7WE2Wd62DNTCMTxJEs4"
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    api_key: str = ""
    enabled: bool = True
    token_budget: int = 1000  # advisory; not sent with ingest/retrieve
    api_base: str = DEFAULT_API_BASE
    anon_key: str = DEFAULT_ANON_KEY
    timeout: float = 30.0


# ---------------------------------------------------------------------------
# Host chat log
# ---------------------------------------------------------------------------

class ChatEvent(str, Enum):
    """Lifecycle signals emitted by the host chat application."""
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    GENERATION_STARTED = "generation_started"


@dataclass
class ChatEntry:
    """One record of the host's chat log."""
    mes: str = ""
    is_user: bool = False
    name: str | None = None  # speaker; set per-message in group chats


@dataclass
class ChatGroup:
    id: str
    members: list[str] = field(default_factory=list)


@dataclass
class HostContext:
    """Snapshot of the host state the bridge reads from."""
    chat_id: str | None = None
    character_id: str | None = None
    group_id: str | None = None
    name1: str | None = None  # user persona
    name2: str | None = None  # active character
    chat: list[ChatEntry] = field(default_factory=list)
    groups: list[ChatGroup] = field(default_factory=list)


@dataclass
class ChatMessage:
    """Outbound wire message. ``message_id`` is 1-based within a chat."""
    message_id: int
    role: Literal["user", "assistant"]
    content: str
    speaker: str

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "role": self.role,
            "content": self.content,
            "speaker": self.speaker,
        }


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

@dataclass
class SessionStats:
    """Process-local counters. Not authoritative; reset on reload."""
    messages_sent: int = 0
    events_created: int = 0


class LimitKind(str, Enum):
    STORAGE = "storage"
    DAILY = "daily"


# ---------------------------------------------------------------------------
# Remote responses
# ---------------------------------------------------------------------------

@dataclass
class Registration:
    api_key: str
    existing_user: bool = False


@dataclass
class UsageReport:
    tier: str = "free"
    storage_used_bytes: int = 0
    storage_limit_bytes: int = 0
    storage_percent: float = 0.0
    total_events: int = 0
    tokens_saved_estimate: int = 0
    total_messages_processed: int = 0
    chats: int = 0
    summarizations_today: int = 0
    summarizations_limit: int = 50

    @classmethod
    def from_dict(cls, data: dict) -> UsageReport:
        return cls(
            tier=data.get("tier") or "free",
            storage_used_bytes=data.get("storage_used_bytes") or 0,
            storage_limit_bytes=data.get("storage_limit_bytes") or 0,
            storage_percent=data.get("storage_percent") or 0,
            total_events=data.get("total_events") or 0,
            tokens_saved_estimate=data.get("tokens_saved_estimate") or 0,
            total_messages_processed=data.get("total_messages_processed") or 0,
            chats=data.get("chats") or 0,
            summarizations_today=data.get("summarizations_today") or 0,
            # -1 means unlimited; 0/missing falls back to the free-tier default
            summarizations_limit=data.get("summarizations_limit") or 50,
        )


@dataclass
class IngestResult:
    events_created: int = 0
    messages_stored: int = 0


@dataclass
class DeleteResult:
    storage_freed_bytes: int = 0


@dataclass
class StoredChat:
    chat_id: str
    event_count: int = 0
    message_count: int = 0
    last_updated: str = ""


@dataclass
class Memory:
    id: str
    chat_id: str = ""
    summary: str = ""
    event_type: str | None = None
    created_at: str = ""
    location: str | None = None
    characters_involved: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> Memory:
        return cls(
            id=str(data.get("id", "")),
            chat_id=data.get("chat_id", ""),
            summary=data.get("summary", ""),
            event_type=data.get("event_type"),
            created_at=data.get("created_at", ""),
            location=data.get("location"),
            characters_involved=list(data.get("characters_involved") or []),
        )


@dataclass
class MemoryPage:
    memories: list[Memory] = field(default_factory=list)
    total: int = 0
    event_types: list[str] = field(default_factory=list)


@dataclass
class MemoryBrowserState:
    """Pagination/filter cursor for the memory list. Rebuilt from server responses."""
    page: int = 0
    page_size: int = 20
    total: int = 0
    chat_filter: str = ""
    type_filter: str = ""
    type_options: list[str] = field(default_factory=list)


@dataclass
class ImportReport:
    """Outcome of a bulk import. Partial success is a valid terminal state."""
    total: int = 0
    processed: int = 0
    batches_sent: int = 0
    events_created: int = 0
    stopped_by_quota: bool = False
    limit_kind: LimitKind | None = None

    @property
    def complete(self) -> bool:
        return self.processed == self.total and not self.stopped_by_quota


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LoreVaultError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(LoreVaultError):
    """Missing credential, disabled extension, or no open chat."""


class QuotaExceededError(LoreVaultError):
    """HTTP 402: storage or daily extraction limit reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 402,
        limit_kind: LimitKind = LimitKind.DAILY,
    ):
        super().__init__(message, status_code=status_code)
        self.limit_kind = limit_kind


class AuthenticationError(LoreVaultError):
    """The API key was rejected."""


class TransientError(LoreVaultError):
    """Network failure or any other non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None, processed: int = 0):
        super().__init__(message, status_code=status_code)
        self.processed = processed


# ---------------------------------------------------------------------------
# Host capabilities
# ---------------------------------------------------------------------------

EventHandler = Callable[..., Awaitable[None]]


@runtime_checkable
class ChatEventSource(Protocol):
    def on(self, event: ChatEvent, handler: EventHandler) -> None: ...

    def off(self, event: ChatEvent, handler: EventHandler) -> None: ...


@runtime_checkable
class HostContextProvider(Protocol):
    def get_context(self) -> HostContext: ...


@runtime_checkable
class PromptInjector(Protocol):
    def set_extension_prompt(self, key: str, value: str, position: str, depth: int) -> None: ...


@runtime_checkable
class SettingsStore(Protocol):
    def load(self) -> Settings: ...

    def save(self, settings: Settings) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None: ...


@runtime_checkable
class Confirmer(Protocol):
    def confirm(self, text: str) -> bool: ...

    def prompt(self, text: str) -> str | None: ...
