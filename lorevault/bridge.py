"""EventBridge: forwards host chat events to LoreVault and injects memories back."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from .client import LoreVaultClient
from .config import DebouncedSaver
from .core.browser import MemoryBrowser
from .core.formatting import format_bytes
from .core.identity import (
    chat_to_messages,
    get_active_characters,
    get_current_chat_id,
    get_current_message_id,
    get_recent_context,
    latest_message,
)
from .core.quota import QuotaLatch
from .events import IN_PROMPT, LoggingNotifier
from .types import (
    AuthenticationError,
    ChatEvent,
    ChatEventSource,
    ChatMessage,
    ConfigurationError,
    Confirmer,
    DeleteResult,
    HostContext,
    HostContextProvider,
    ImportReport,
    IngestResult,
    LimitKind,
    LoreVaultError,
    Notifier,
    PromptInjector,
    QuotaExceededError,
    Registration,
    SessionStats,
    SettingsStore,
    StoredChat,
    TransientError,
    UsageReport,
)

logger = logging.getLogger(__name__)

PROMPT_KEY = "lorevault"
PROMPT_DEPTH = 0
IMPORT_BATCH_SIZE = 20
DELETE_ALL_CHALLENGE = "DELETE"


class EventBridge:
    """Single owner of a LoreVault session.

    Settings, session counters and the limit-warning latch live on the
    instance; every host capability is passed in.

    Usage:
        bridge = EventBridge(settings_store, host, prompts, notifier=notifier)
        bridge.attach(event_source)

        # host emits MESSAGE_SENT / MESSAGE_RECEIVED / GENERATION_STARTED

        bridge.detach()

    Background hooks never raise: failures are logged and the chat goes on.
    User-initiated operations (register, import, delete, ...) raise
    LoreVaultError subclasses for the caller to report.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        host: HostContextProvider,
        prompts: PromptInjector,
        notifier: Notifier | None = None,
        confirmer: Confirmer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        save_delay: float = 1.0,
    ) -> None:
        self.settings = settings_store.load()
        self._saver = DebouncedSaver(settings_store, delay=save_delay)
        self.client = LoreVaultClient(self.settings, transport=transport)
        self._host = host
        self._prompts = prompts
        self._notifier = notifier or LoggingNotifier()
        self._confirmer = confirmer
        self.stats = SessionStats()
        self.quota = QuotaLatch(self._notifier)
        self.usage: UsageReport | None = None
        self._source: ChatEventSource | None = None
        self._injected_chat_id: str | None = None

    # ------------------------------------------------------------------
    # Host wiring
    # ------------------------------------------------------------------

    def attach(self, source: ChatEventSource) -> None:
        if self._source is not None:
            self.detach()
        source.on(ChatEvent.MESSAGE_SENT, self.on_message_sent)
        source.on(ChatEvent.MESSAGE_RECEIVED, self.on_message_received)
        source.on(ChatEvent.GENERATION_STARTED, self.on_generation_started)
        self._source = source

    def detach(self) -> None:
        if self._source is None:
            return
        self._source.off(ChatEvent.MESSAGE_SENT, self.on_message_sent)
        self._source.off(ChatEvent.MESSAGE_RECEIVED, self.on_message_received)
        self._source.off(ChatEvent.GENERATION_STARTED, self.on_generation_started)
        self._source = None

    async def close(self) -> None:
        self.detach()
        self.flush_settings()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.settings.enabled and bool(self.settings.api_key)

    def save_settings(self) -> None:
        self._saver.request(self.settings)

    def flush_settings(self) -> None:
        self._saver.flush()

    def set_enabled(self, enabled: bool) -> None:
        self.settings.enabled = enabled
        self.save_settings()

    def set_token_budget(self, budget: int) -> None:
        if budget <= 0:
            raise ConfigurationError(f"token_budget must be > 0 (got {budget})")
        self.settings.token_budget = budget
        self.save_settings()

    def _erase_api_key(self) -> None:
        logger.warning("LoreVault: Invalid API key detected, clearing settings")
        self.settings.api_key = ""
        self.save_settings()

    def get_current_chat_id(self) -> str | None:
        return get_current_chat_id(self._host.get_context())

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def on_message_sent(self, message_id: int | None = None) -> None:
        ctx = self._host.get_context()
        message = latest_message(ctx)
        if message is None:
            return
        try:
            await self.ingest([message], ctx=ctx)
        except Exception:
            logger.exception("LoreVault message-sent hook failed")

    async def on_message_received(self, message_id: int | None = None) -> None:
        ctx = self._host.get_context()
        entry = ctx.chat[-1] if ctx.chat else None
        if entry is None or entry.is_user:
            # out-of-order delivery: newest entry is not the reply
            return
        message = latest_message(ctx, role="assistant")
        try:
            await self.ingest([message], ctx=ctx)
        except Exception:
            logger.exception("LoreVault message-received hook failed")

    async def on_generation_started(self, *args) -> None:
        ctx = self._host.get_context()
        chat_id = get_current_chat_id(ctx)

        # An injection made for another chat must not survive the switch.
        if self._injected_chat_id is not None and self._injected_chat_id != chat_id:
            self._prompts.set_extension_prompt(PROMPT_KEY, "", IN_PROMPT, PROMPT_DEPTH)
            logger.info("LoreVault: Cleared context injected for chat %s", self._injected_chat_id)
            self._injected_chat_id = None

        if not self.active:
            return

        try:
            context = await self.retrieve(ctx=ctx)
        except Exception:
            logger.exception("LoreVault context retrieval failed")
            return

        # Failure or empty result keeps the previous injection for this chat.
        if context and context.strip():
            self._prompts.set_extension_prompt(PROMPT_KEY, context, IN_PROMPT, PROMPT_DEPTH)
            self._injected_chat_id = chat_id
            logger.info("LoreVault: Context injected into prompt")

    # ------------------------------------------------------------------
    # Memory pipeline
    # ------------------------------------------------------------------

    def _resolve_chat(self, ctx: HostContext | None) -> tuple[HostContext, str | None]:
        ctx = ctx if ctx is not None else self._host.get_context()
        return ctx, get_current_chat_id(ctx)

    async def ingest(
        self,
        messages: list[ChatMessage],
        ctx: HostContext | None = None,
    ) -> IngestResult | None:
        """Store messages for the current chat. Returns None on any failure."""
        if not self.active:
            return None
        ctx, chat_id = self._resolve_chat(ctx)
        if not chat_id:
            return None

        try:
            result = await self.client.ingest(chat_id, messages)
        except QuotaExceededError as e:
            self.quota.trip(str(e))
            return None
        except LoreVaultError as e:
            logger.error("LoreVault ingest failed: %s", e)
            return None

        self.stats.messages_sent += len(messages)
        self.stats.events_created += result.events_created
        if result.events_created > 0:
            logger.info(
                "LoreVault: %d event(s) created, %d message(s) stored",
                result.events_created, result.messages_stored,
            )
        return result

    async def retrieve(self, ctx: HostContext | None = None) -> str | None:
        """Memory digest for the next prompt, or None."""
        if not self.active:
            return None
        ctx, chat_id = self._resolve_chat(ctx)
        if not chat_id:
            return None

        try:
            return await self.client.retrieve(
                chat_id,
                current_context=get_recent_context(ctx),
                current_characters=get_active_characters(ctx),
                current_message_id=get_current_message_id(ctx),
            )
        except QuotaExceededError as e:
            self.quota.trip(str(e))
            return None
        except LoreVaultError as e:
            logger.error("LoreVault retrieve failed: %s", e)
            return None

    async def import_messages(
        self,
        chat_id: str,
        messages: list[ChatMessage],
        progress: Callable[[int, int], None] | None = None,
    ) -> ImportReport:
        """Send ``messages`` in batches of 20, stopping at the first 402.

        Not transactional: batches the service accepted stay stored.
        """
        if not self.active:
            raise ConfigurationError("LoreVault is not enabled or configured")

        report = ImportReport(total=len(messages))

        for start in range(0, len(messages), IMPORT_BATCH_SIZE):
            batch = messages[start:start + IMPORT_BATCH_SIZE]
            try:
                result = await self.client.ingest(chat_id, batch)
            except QuotaExceededError as e:
                report.stopped_by_quota = True
                report.limit_kind = e.limit_kind
                self.quota.trip(str(e))
                label = "Storage" if e.limit_kind == LimitKind.STORAGE else "Daily"
                self._notifier.notify(
                    "warning",
                    f"Import stopped at {report.processed} messages. {label} limit reached.",
                )
                break
            except (ConfigurationError, AuthenticationError):
                raise
            except LoreVaultError as e:
                logger.error("LoreVault import failed after %d messages: %s", report.processed, e)
                raise TransientError(
                    f"Import failed: {e}", status_code=e.status_code, processed=report.processed,
                ) from e

            report.batches_sent += 1
            report.processed += len(batch)
            report.events_created += result.events_created
            self.stats.messages_sent += len(batch)
            self.stats.events_created += result.events_created
            if progress is not None:
                progress(report.processed, report.total)

        if report.complete:
            self._notifier.notify("success", f"Imported {report.total} messages successfully!")
        return report

    async def import_current_chat(
        self,
        progress: Callable[[int, int], None] | None = None,
    ) -> ImportReport | None:
        """Import the whole open chat. Returns None if the user declines."""
        if not self.active:
            raise ConfigurationError("LoreVault is not enabled or configured")
        ctx, chat_id = self._resolve_chat(None)
        if not chat_id:
            raise ConfigurationError("No chat selected. Open a chat first.")
        if not ctx.chat:
            raise ConfigurationError("Current chat is empty.")

        messages = chat_to_messages(ctx)
        if self._confirmer is not None and not self._confirmer.confirm(
            f"Import {len(messages)} messages from the current chat?\n\n"
            "This will process the entire chat history and extract events, "
            "characters, and relationships.\n\n"
            "This may take a moment for long chats."
        ):
            return None

        report = await self.import_messages(chat_id, messages, progress=progress)
        await self.test_connection()
        return report

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def _confirm_delete(self, scope: str) -> bool:
        if self._confirmer is None:
            logger.warning("LoreVault: Refusing to delete %s without a confirmer", scope)
            return False

        if scope != "all":
            return self._confirmer.confirm(
                f'Delete memory for chat "{scope}"?\n\n'
                "This will remove all stored events and character data for this chat.\n\n"
                "Your other chats will not be affected."
            )

        if not self._confirmer.confirm(
            "Are you sure you want to delete ALL your LoreVault data?\n\n"
            "This will permanently delete:\n"
            "- All stored events and summaries\n"
            "- All character and relationship data\n"
            "- All chat memory\n\n"
            "This action cannot be undone!"
        ):
            return False
        if not self._confirmer.confirm(
            "This is your last chance to cancel.\n\n"
            f'Type "{DELETE_ALL_CHALLENGE}" in the next prompt to confirm.'
        ):
            return False
        typed = self._confirmer.prompt(f"Type {DELETE_ALL_CHALLENGE} to confirm:")
        if typed != DELETE_ALL_CHALLENGE:
            self._notifier.notify("info", "Deletion cancelled.")
            return False
        return True

    async def delete_scope(self, scope: str) -> DeleteResult | None:
        """Delete one chat's memory, or everything when ``scope == "all"``.

        Irreversible on the server. Returns None when not confirmed, in
        which case no request was made.
        """
        if not scope:
            raise ConfigurationError("No chat selected. Open a chat first.")
        if not self._confirm_delete(scope):
            return None

        if scope == "all":
            result = await self.client.delete_all()
            self._notifier.notify("success", "All your data has been deleted.")
        else:
            result = await self.client.delete_chat(scope)
            self._notifier.notify(
                "success",
                f"Chat memory deleted. Freed {format_bytes(result.storage_freed_bytes)}.",
            )
        await self.test_connection()
        return result

    async def delete_current_chat(self) -> DeleteResult | None:
        chat_id = self.get_current_chat_id()
        if not chat_id:
            raise ConfigurationError("No chat selected. Open a chat first.")
        return await self.delete_scope(chat_id)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def register(self, email: str) -> Registration:
        email = (email or "").strip()
        if not email:
            raise ConfigurationError("Please enter your email address")

        registration = await self.client.register(email)
        self.settings.api_key = registration.api_key
        self.save_settings()
        await self.test_connection()

        if registration.existing_user:
            self._notifier.notify("info", "Welcome back! Your existing API key has been restored.")
        else:
            self._notifier.notify("success", "Registration successful! LoreVault is now active.")
        return registration

    async def test_connection(self) -> UsageReport | None:
        """Fetch usage. A rejected key is erased so the user re-registers."""
        try:
            usage = await self.client.usage()
        except AuthenticationError as e:
            logger.error("LoreVault connection test failed: %s", e)
            self._erase_api_key()
            self._notifier.notify("error", "Your API key is invalid. Please register again.")
            return None
        except LoreVaultError as e:
            logger.error("LoreVault connection test failed: %s", e)
            return None

        self.usage = usage
        logger.info("LoreVault: Connected (%s)", usage.tier)
        return usage

    async def list_chats(self) -> list[StoredChat]:
        return await self.client.list_chats()

    def memory_browser(self) -> MemoryBrowser:
        return MemoryBrowser(
            self.client,
            confirmer=self._confirmer,
            notifier=self._notifier,
            on_deleted=self.test_connection,
        )

    async def open_upgrade(self, tier: str = "pro") -> str | None:
        return await self.client.checkout(tier)

    async def open_billing_portal(self, return_url: str) -> str | None:
        return await self.client.billing_portal(return_url)
