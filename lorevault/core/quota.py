"""QuotaLatch: one-shot limit warning for HTTP 402 responses."""

from __future__ import annotations

import logging

from ..types import LimitKind

logger = logging.getLogger(__name__)

LIMIT_BANNER = {
    LimitKind.STORAGE: "Storage limit reached! Memory storage paused. Existing memories still work.",
    LimitKind.DAILY: "Daily limit reached! Memory storage paused. Existing memories still work.",
}

LIMIT_TOAST = {
    LimitKind.STORAGE: "Storage limit reached. Upgrade to Pro for more storage.",
    LimitKind.DAILY: "Daily extraction limit reached. Upgrade to Pro for unlimited memory storage.",
}


def classify_limit(error_message: str | None) -> LimitKind:
    """A 402 whose text mentions storage is a storage limit; anything else is daily."""
    if error_message and "storage" in error_message.lower():
        return LimitKind.STORAGE
    return LimitKind.DAILY


class QuotaLatch:
    """Suppress repeated limit warnings for the life of a session.

    Not a rate limiter: once tripped it stays tripped until a new latch
    is built (the equivalent of a reload).
    """

    def __init__(self, notifier=None) -> None:
        self._notifier = notifier
        self.warning_shown = False
        self.last_kind: LimitKind | None = None

    @property
    def banner(self) -> str:
        """Persistent status line for the last limit hit; empty until tripped."""
        if self.last_kind is None:
            return ""
        return LIMIT_BANNER[self.last_kind]

    def trip(self, error_message: str | None = "") -> bool:
        """Record a 402. Returns True only the first time a warning is shown."""
        kind = classify_limit(error_message)
        self.last_kind = kind
        logger.warning("LoreVault: Limit reached - %s", error_message)
        if self.warning_shown:
            return False
        self.warning_shown = True
        if self._notifier is not None:
            self._notifier.notify("warning", LIMIT_TOAST[kind])
        return True
