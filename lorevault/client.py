"""LoreVaultClient: calls the LoreVault edge functions via httpx."""

from __future__ import annotations

import logging

import httpx

from .core.quota import classify_limit
from .types import (
    AuthenticationError,
    ChatMessage,
    ConfigurationError,
    DeleteResult,
    IngestResult,
    LoreVaultError,
    Memory,
    MemoryPage,
    QuotaExceededError,
    Registration,
    Settings,
    StoredChat,
    TransientError,
    UsageReport,
)

logger = logging.getLogger(__name__)


class LoreVaultClient:
    """Async client for the remote memory service.

    Reads ``api_key`` from the shared Settings object on every call, so a
    key set by ``register`` or cleared after an auth failure takes effect
    immediately. Failures are raised as LoreVaultError subclasses; there
    is no retry.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    # -- plumbing --

    def _headers(self, authenticated: bool = True) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.anon_key}",
        }
        if authenticated:
            headers["x-api-key"] = self.settings.api_key
        return headers

    def _url(self, endpoint: str) -> str:
        return f"{self.settings.api_base.rstrip('/')}/{endpoint}"

    @staticmethod
    def _error_text(response: httpx.Response, default: str) -> str:
        try:
            data = response.json()
        except ValueError:
            return default
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return default

    def _error_for(self, response: httpx.Response) -> LoreVaultError:
        status = response.status_code
        if status == 402:
            message = self._error_text(response, "Limit reached")
            return QuotaExceededError(message, limit_kind=classify_limit(message))

        message = self._error_text(response, f"HTTP {status}")
        if status == 401 or "Invalid API key" in message:
            return AuthenticationError(message, status_code=status)
        return TransientError(message, status_code=status)

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict | None = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> dict:
        if authenticated and not self.settings.api_key:
            raise ConfigurationError("No API key configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    self._url(endpoint),
                    headers=self._headers(authenticated),
                    json=body,
                    params=params,
                )
        except httpx.HTTPError as e:
            raise TransientError(f"HTTP error: {e}") from e

        logger.debug("%s %s -> %d", method, endpoint, response.status_code)
        if not response.is_success:
            raise self._error_for(response)

        try:
            data = response.json()
        except ValueError as e:
            raise TransientError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code,
            ) from e
        return data if isinstance(data, dict) else {}

    # -- account --

    async def register(self, email: str) -> Registration:
        """Register (or recover) an account. Only the anon token is sent."""
        data = await self._request(
            "POST", "register", body={"email": email}, authenticated=False,
        )
        if not data.get("api_key"):
            raise TransientError("Registration failed")
        return Registration(
            api_key=data["api_key"],
            existing_user=bool(data.get("existing_user")),
        )

    async def usage(self) -> UsageReport:
        return UsageReport.from_dict(await self._request("GET", "usage"))

    async def checkout(self, tier: str = "pro") -> str | None:
        data = await self._request("POST", "checkout", body={"tier": tier})
        return data.get("checkout_url")

    async def billing_portal(self, return_url: str) -> str | None:
        data = await self._request(
            "POST", "billing-portal", body={"return_url": return_url},
        )
        return data.get("url")

    # -- memory pipeline --

    async def ingest(self, chat_id: str, messages: list[ChatMessage]) -> IngestResult:
        data = await self._request(
            "POST",
            "ingest",
            body={
                "chat_id": chat_id,
                "messages": [m.to_dict() for m in messages],
            },
        )
        return IngestResult(
            events_created=data.get("events_created") or 0,
            messages_stored=data.get("messages_stored") or 0,
        )

    async def retrieve(
        self,
        chat_id: str,
        current_context: str,
        current_characters: list[str],
        current_message_id: int,
    ) -> str:
        data = await self._request(
            "POST",
            "retrieve",
            body={
                "chat_id": chat_id,
                "current_context": current_context,
                "current_characters": current_characters,
                "current_message_id": current_message_id,
            },
        )
        return data.get("context") or ""

    # -- stored data --

    async def list_chats(self) -> list[StoredChat]:
        data = await self._request("GET", "chats")
        return [
            StoredChat(
                chat_id=c.get("chat_id", ""),
                event_count=c.get("event_count") or 0,
                message_count=c.get("message_count") or 0,
                last_updated=c.get("last_updated") or "",
            )
            for c in data.get("chats") or []
        ]

    async def list_memories(
        self,
        limit: int = 20,
        offset: int = 0,
        chat_id: str | None = None,
        event_type: str | None = None,
    ) -> MemoryPage:
        params: dict = {"limit": limit, "offset": offset}
        if chat_id:
            params["chat_id"] = chat_id
        if event_type:
            params["event_type"] = event_type
        data = await self._request("GET", "memories", params=params)
        return MemoryPage(
            memories=[Memory.from_dict(m) for m in data.get("memories") or []],
            total=data.get("total") or 0,
            event_types=list(data.get("event_types") or []),
        )

    async def delete_memory(self, memory_id: str) -> DeleteResult:
        data = await self._request("DELETE", "memories", body={"memory_id": memory_id})
        return DeleteResult(storage_freed_bytes=data.get("storage_freed_bytes") or 0)

    async def delete_chat(self, chat_id: str) -> DeleteResult:
        data = await self._request("DELETE", "delete", body={"chat_id": chat_id})
        return DeleteResult(storage_freed_bytes=data.get("storage_freed_bytes") or 0)

    async def delete_all(self) -> DeleteResult:
        data = await self._request("DELETE", "delete", body={"delete_all": True})
        return DeleteResult(storage_freed_bytes=data.get("storage_freed_bytes") or 0)
