"""In-process host adapters: event hub, prompt registry, notifiers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .types import ChatEvent, EventHandler

logger = logging.getLogger(__name__)

IN_PROMPT = "in_prompt"


class EventHub:
    """Minimal ChatEventSource: handlers are awaited in subscription order.

    ``emit`` propagates handler exceptions, like the host event loop does,
    so a misbehaving subscriber is visible to whoever emitted the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[ChatEvent, list[EventHandler]] = {}

    def on(self, event: ChatEvent, handler: EventHandler) -> None:
        self._handlers.setdefault(ChatEvent(event), []).append(handler)

    def off(self, event: ChatEvent, handler: EventHandler) -> None:
        handlers = self._handlers.get(ChatEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: ChatEvent) -> int:
        return len(self._handlers.get(ChatEvent(event), []))

    async def emit(self, event: ChatEvent, *args) -> None:
        for handler in list(self._handlers.get(ChatEvent(event), [])):
            await handler(*args)


@dataclass
class ExtensionPrompt:
    value: str
    position: str = IN_PROMPT
    depth: int = 0


class PromptRegistry:
    """Prompt-injection slots keyed by a stable identifier.

    Setting a key again overwrites it; an empty value clears the slot.
    """

    def __init__(self) -> None:
        self._prompts: dict[str, ExtensionPrompt] = {}

    def set_extension_prompt(
        self,
        key: str,
        value: str,
        position: str = IN_PROMPT,
        depth: int = 0,
    ) -> None:
        if not value:
            self._prompts.pop(key, None)
            return
        self._prompts[key] = ExtensionPrompt(value=value, position=position, depth=depth)

    def get(self, key: str) -> ExtensionPrompt | None:
        return self._prompts.get(key)


class LoggingNotifier:
    """Notifier that routes user-facing messages into ``logging``."""

    _LEVELS = {
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "success": logging.INFO,
        "info": logging.INFO,
    }

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify(self, level: str, message: str) -> None:
        self._log.log(self._LEVELS.get(level, logging.INFO), message)


class RecordingNotifier:
    """Keeps every notification; used by embedding hosts that render later."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))
