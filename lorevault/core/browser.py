"""MemoryBrowser: paginated, filtered view over stored memories."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ..types import DeleteResult, MemoryBrowserState, MemoryPage
from .formatting import format_bytes

logger = logging.getLogger(__name__)


class MemoryBrowser:
    """Holds the page/filter cursor and the memories currently shown.

    State is rebuilt from each server response; nothing is persisted.
    ``on_deleted`` is awaited after each successful delete, e.g. to
    refresh usage figures.
    """

    def __init__(
        self,
        client,
        confirmer=None,
        state: MemoryBrowserState | None = None,
        notifier=None,
        on_deleted: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self._client = client
        self._confirmer = confirmer
        self._notifier = notifier
        self._on_deleted = on_deleted
        self.state = state or MemoryBrowserState()
        self.page = MemoryPage()

    @property
    def total_pages(self) -> int:
        size = self.state.page_size
        return (self.state.total + size - 1) // size if size > 0 else 0

    @property
    def has_prev(self) -> bool:
        return self.state.page > 0

    @property
    def has_next(self) -> bool:
        return self.state.page < self.total_pages - 1

    async def load(self, reset_page: bool = False) -> MemoryPage:
        if reset_page:
            self.state.page = 0
        page = await self._client.list_memories(
            limit=self.state.page_size,
            offset=self.state.page * self.state.page_size,
            chat_id=self.state.chat_filter or None,
            event_type=self.state.type_filter or None,
        )
        self.state.total = page.total
        self.state.type_options = list(page.event_types)
        self.page = page
        return page

    async def set_chat_filter(self, chat_id: str) -> MemoryPage:
        self.state.chat_filter = chat_id or ""
        return await self.load(reset_page=True)

    async def set_type_filter(self, event_type: str) -> MemoryPage:
        self.state.type_filter = event_type or ""
        return await self.load(reset_page=True)

    async def next_page(self) -> MemoryPage | None:
        if not self.has_next:
            return None
        self.state.page += 1
        return await self.load()

    async def prev_page(self) -> MemoryPage | None:
        if not self.has_prev:
            return None
        self.state.page -= 1
        return await self.load()

    async def delete(self, memory_id: str) -> DeleteResult | None:
        """Delete one memory after confirmation. Returns None if not confirmed."""
        if self._confirmer is None:
            logger.warning("Refusing to delete memory %s without a confirmer", memory_id)
            return None
        if not self._confirmer.confirm("Delete this memory?\n\nThis cannot be undone."):
            return None

        result = await self._client.delete_memory(memory_id)
        logger.info("Deleted memory %s (%d bytes freed)", memory_id, result.storage_freed_bytes)

        self.page.memories = [m for m in self.page.memories if m.id != memory_id]
        self.state.total = max(0, self.state.total - 1)
        if not self.page.memories and self.state.page > 0:
            self.state.page -= 1
            await self.load()

        if self._notifier is not None:
            self._notifier.notify(
                "success", f"Memory deleted. Freed {format_bytes(result.storage_freed_bytes)}.",
            )
        if self._on_deleted is not None:
            await self._on_deleted()
        return result
