"""Shared fixtures for lorevault tests."""

from __future__ import annotations

import json
from collections import deque
from typing import Callable

import httpx
import pytest

from lorevault.bridge import EventBridge
from lorevault.config import MemorySettingsStore
from lorevault.events import EventHub, PromptRegistry, RecordingNotifier
from lorevault.types import ChatEntry, ChatGroup, HostContext, Settings


DEFAULT_USAGE = {
    "tier": "free",
    "storage_used_bytes": 1536,
    "storage_limit_bytes": 10 * 1024 * 1024,
    "storage_percent": 0.01,
    "total_events": 12,
    "tokens_saved_estimate": 4200,
    "total_messages_processed": 40,
    "chats": 2,
    "summarizations_today": 3,
    "summarizations_limit": 50,
}


class FakeService:
    """In-process stand-in for the remote API, served through httpx.MockTransport.

    Every request is recorded. Responses come from a one-shot queue per
    endpoint, then a sticky override, then a default.
    """

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.context = "[STORY MEMORY]\nAlice met Bob at the harbor."
        self._queued: dict[str, deque] = {}
        self._sticky: dict[str, Callable] = {}
        self.transport = httpx.MockTransport(self._handle)

    # -- configuration --

    def queue(self, endpoint: str, status: int = 200, body: dict | None = None) -> None:
        self._queued.setdefault(endpoint, deque()).append(
            lambda req, rec: httpx.Response(status, json=body if body is not None else {})
        )

    def set(self, endpoint: str, status: int = 200, body: dict | None = None) -> None:
        self._sticky[endpoint] = (
            lambda req, rec: httpx.Response(status, json=body if body is not None else {})
        )

    def raw(self, endpoint: str, response: httpx.Response) -> None:
        self._sticky[endpoint] = lambda req, rec: response

    def fail(self, endpoint: str) -> None:
        def _raise(req, rec):
            raise httpx.ConnectError("connection refused", request=req)
        self._sticky[endpoint] = _raise

    def calls(self, endpoint: str) -> list[dict]:
        return [r for r in self.requests if r["endpoint"] == endpoint]

    # -- transport --

    def _handle(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content) if request.content else None
        record = {
            "method": request.method,
            "endpoint": endpoint,
            "body": body,
            "params": dict(request.url.params),
            "headers": dict(request.headers),
        }
        self.requests.append(record)

        queued = self._queued.get(endpoint)
        if queued:
            return queued.popleft()(request, record)
        if endpoint in self._sticky:
            return self._sticky[endpoint](request, record)
        return self._default(endpoint, record)

    def _default(self, endpoint: str, record: dict) -> httpx.Response:
        body = record["body"] or {}
        if endpoint == "register":
            return httpx.Response(200, json={"api_key": "lv_new_key", "existing_user": False})
        if endpoint == "usage":
            return httpx.Response(200, json=DEFAULT_USAGE)
        if endpoint == "ingest":
            n = len(body.get("messages", []))
            return httpx.Response(200, json={"events_created": 1, "messages_stored": n})
        if endpoint == "retrieve":
            return httpx.Response(200, json={"context": self.context})
        if endpoint == "delete":
            return httpx.Response(200, json={"storage_freed_bytes": 2048})
        if endpoint == "memories":
            if record["method"] == "DELETE":
                return httpx.Response(200, json={"storage_freed_bytes": 512})
            return httpx.Response(200, json={"memories": [], "total": 0, "event_types": []})
        if endpoint == "chats":
            return httpx.Response(200, json={"chats": []})
        if endpoint == "checkout":
            return httpx.Response(200, json={"checkout_url": "https://pay.example/checkout"})
        if endpoint == "billing-portal":
            return httpx.Response(200, json={"url": "https://pay.example/portal"})
        return httpx.Response(404, json={"error": f"Unknown endpoint {endpoint}"})


class FakeHost:
    """HostContextProvider returning a mutable HostContext."""

    def __init__(self, context: HostContext | None = None) -> None:
        self.context = context or HostContext()

    def get_context(self) -> HostContext:
        return self.context


class FakeConfirmer:
    """Scripted answers for confirm() and prompt(); records every question."""

    def __init__(self, answers: list[bool] | None = None, typed: str | None = None) -> None:
        self._answers = deque(answers if answers is not None else [True, True, True])
        self.typed = typed
        self.questions: list[str] = []

    def confirm(self, text: str) -> bool:
        self.questions.append(text)
        return self._answers.popleft() if self._answers else False

    def prompt(self, text: str) -> str | None:
        self.questions.append(text)
        return self.typed


def make_chat(n: int, start_user: bool = True) -> list[ChatEntry]:
    entries = []
    for i in range(n):
        is_user = (i % 2 == 0) == start_user
        entries.append(ChatEntry(
            mes=f"message {i + 1}",
            is_user=is_user,
            name="Alice" if is_user else "Seraphina",
        ))
    return entries


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="lv_test_key", api_base="https://lorevault.test/functions/v1")


@pytest.fixture
def settings_store(settings) -> MemorySettingsStore:
    return MemorySettingsStore(settings)


@pytest.fixture
def host_context() -> HostContext:
    return HostContext(
        chat_id="chat-2026-01-15",
        character_id="7",
        name1="Alice",
        name2="Seraphina",
        chat=make_chat(4),
    )


@pytest.fixture
def group_context() -> HostContext:
    return HostContext(
        chat_id="group-chat-1",
        character_id="7",
        group_id="g42",
        name1="Alice",
        name2="Seraphina",
        chat=[
            ChatEntry(mes="Hello all", is_user=True),
            ChatEntry(mes="Greetings, traveler.", name="Seraphina"),
            ChatEntry(mes="Who goes there?", name="Bram"),
        ],
        groups=[ChatGroup(id="g42", members=["Seraphina", "Bram", "Ysolde"])],
    )


@pytest.fixture
def host(host_context) -> FakeHost:
    return FakeHost(host_context)


@pytest.fixture
def prompts() -> PromptRegistry:
    return PromptRegistry()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def confirmer() -> FakeConfirmer:
    return FakeConfirmer()


@pytest.fixture
def bridge(settings_store, host, prompts, notifier, confirmer, service) -> EventBridge:
    return EventBridge(
        settings_store,
        host,
        prompts,
        notifier=notifier,
        confirmer=confirmer,
        transport=service.transport,
    )


@pytest.fixture
def hub(bridge) -> EventHub:
    hub = EventHub()
    bridge.attach(hub)
    return hub
