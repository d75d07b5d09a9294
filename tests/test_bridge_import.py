"""Tests for bulk chat import."""

from __future__ import annotations

import pytest

from conftest import FakeConfirmer, make_chat
from lorevault.bridge import EventBridge
from lorevault.core.identity import chat_to_messages
from lorevault.types import (
    AuthenticationError,
    ChatEvent,
    ConfigurationError,
    HostContext,
    LimitKind,
    TransientError,
)


def _messages(n):
    return chat_to_messages(HostContext(chat_id="x", name1="Alice", chat=make_chat(n)))


class TestImportMessages:
    @pytest.mark.asyncio
    async def test_batches_of_twenty(self, bridge, service):
        report = await bridge.import_messages("7_chat", _messages(45))

        calls = service.calls("ingest")
        assert [len(c["body"]["messages"]) for c in calls] == [20, 20, 5]
        assert all(c["body"]["chat_id"] == "7_chat" for c in calls)
        assert report.batches_sent == 3
        assert report.processed == 45
        assert report.complete

    @pytest.mark.asyncio
    async def test_message_ids_contiguous_across_batches(self, bridge, service):
        await bridge.import_messages("7_chat", _messages(45))

        ids = [m["message_id"] for c in service.calls("ingest") for m in c["body"]["messages"]]
        assert ids == list(range(1, 46))

    @pytest.mark.asyncio
    async def test_exact_multiple(self, bridge, service):
        report = await bridge.import_messages("7_chat", _messages(40))
        assert report.batches_sent == 2
        assert len(service.calls("ingest")) == 2

    @pytest.mark.asyncio
    async def test_progress_after_each_batch(self, bridge):
        seen = []
        await bridge.import_messages("7_chat", _messages(45), progress=lambda d, t: seen.append((d, t)))
        assert seen == [(20, 45), (40, 45), (45, 45)]

    @pytest.mark.asyncio
    async def test_success_notified_once(self, bridge, notifier):
        await bridge.import_messages("7_chat", _messages(45))
        assert notifier.messages == [("success", "Imported 45 messages successfully!")]

    @pytest.mark.asyncio
    async def test_counts_events_and_stats(self, bridge, service):
        service.set("ingest", body={"events_created": 3, "messages_stored": 20})
        report = await bridge.import_messages("7_chat", _messages(45))

        assert report.events_created == 9
        assert bridge.stats.messages_sent == 45
        assert bridge.stats.events_created == 9


class TestImportQuota:
    @pytest.mark.asyncio
    async def test_stops_at_first_402(self, bridge, service, notifier):
        service.queue("ingest", 200, {"events_created": 1, "messages_stored": 20})
        service.queue("ingest", 402, {"error": "Daily summarization limit reached"})

        report = await bridge.import_messages("7_chat", _messages(45))

        assert len(service.calls("ingest")) == 2
        assert report.processed == 20
        assert report.batches_sent == 1
        assert report.stopped_by_quota
        assert report.limit_kind == LimitKind.DAILY
        assert not report.complete
        assert bridge.quota.banner.startswith("Daily limit reached!")
        assert ("warning", "Import stopped at 20 messages. Daily limit reached.") in notifier.messages
        assert not any(level == "success" for level, _ in notifier.messages)

    @pytest.mark.asyncio
    async def test_storage_limit_on_first_batch(self, bridge, service, notifier):
        service.set("ingest", 402, {"error": "Storage limit exceeded"})

        report = await bridge.import_messages("7_chat", _messages(45))

        assert report.processed == 0
        assert report.limit_kind == LimitKind.STORAGE
        assert ("warning", "Import stopped at 0 messages. Storage limit reached.") in notifier.messages

    @pytest.mark.asyncio
    async def test_import_trips_session_latch(self, bridge, hub, service, notifier):
        service.set("ingest", 402, {"error": "Daily limit reached"})
        await bridge.import_messages("7_chat", _messages(5))
        await hub.emit(ChatEvent.MESSAGE_SENT)

        toasts = [m for level, m in notifier.messages if m.startswith("Daily extraction limit")]
        assert len(toasts) == 1
        assert bridge.quota.warning_shown


class TestImportFailure:
    @pytest.mark.asyncio
    async def test_server_error_reports_progress(self, bridge, service, notifier):
        service.queue("ingest", 200, {"events_created": 0, "messages_stored": 20})
        service.queue("ingest", 500, {"error": "Internal error"})

        with pytest.raises(TransientError) as exc:
            await bridge.import_messages("7_chat", _messages(45))

        assert exc.value.processed == 20
        assert exc.value.status_code == 500
        assert "Internal error" in str(exc.value)
        assert len(service.calls("ingest")) == 2
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_network_error(self, bridge, service):
        service.fail("ingest")
        with pytest.raises(TransientError) as exc:
            await bridge.import_messages("7_chat", _messages(3))
        assert exc.value.processed == 0

    @pytest.mark.asyncio
    async def test_missing_key_is_configuration_error(self, bridge, service):
        bridge.settings.api_key = ""
        with pytest.raises(ConfigurationError, match="not enabled or configured"):
            await bridge.import_messages("7_chat", _messages(3))
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_rejected_key_keeps_its_type(self, bridge, service):
        service.queue("ingest", 200, {"events_created": 0, "messages_stored": 20})
        service.queue("ingest", 401, {"error": "Invalid API key"})

        with pytest.raises(AuthenticationError) as exc:
            await bridge.import_messages("7_chat", _messages(45))
        assert not isinstance(exc.value, TransientError)
        assert exc.value.status_code == 401


class TestImportCurrentChat:
    @pytest.mark.asyncio
    async def test_imports_open_chat(self, bridge, service, confirmer):
        report = await bridge.import_current_chat()

        assert report.total == 4
        assert report.complete
        assert service.calls("ingest")[0]["body"]["chat_id"] == "7_chat-2026-01-15"
        assert confirmer.questions[0].startswith("Import 4 messages from the current chat?")

    @pytest.mark.asyncio
    async def test_refreshes_usage_afterwards(self, bridge, service):
        await bridge.import_current_chat()
        assert service.requests[-1]["endpoint"] == "usage"
        assert bridge.usage.tier == "free"

    @pytest.mark.asyncio
    async def test_declined_sends_nothing(self, settings_store, host, prompts, notifier, service):
        bridge = EventBridge(
            settings_store, host, prompts,
            notifier=notifier,
            confirmer=FakeConfirmer(answers=[False]),
            transport=service.transport,
        )
        assert await bridge.import_current_chat() is None
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_empty_chat(self, bridge, host, service):
        host.context.chat.clear()
        with pytest.raises(ConfigurationError, match="Current chat is empty"):
            await bridge.import_current_chat()
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_no_chat(self, bridge, host):
        host.context.chat_id = None
        with pytest.raises(ConfigurationError, match="No chat selected"):
            await bridge.import_current_chat()

    @pytest.mark.asyncio
    async def test_not_configured(self, bridge):
        bridge.settings.api_key = ""
        with pytest.raises(ConfigurationError, match="not enabled or configured"):
            await bridge.import_current_chat()
