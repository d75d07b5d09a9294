"""Chat identity and message extraction from the host chat log."""

from __future__ import annotations

from ..types import ChatEntry, ChatMessage, HostContext

RECENT_CONTEXT_MESSAGES = 5
RECENT_CONTEXT_MAX_CHARS = 4500  # remote payload limit is 5000
ACTIVE_CHARACTER_LOOKBACK = 20


def get_current_chat_id(ctx: HostContext) -> str | None:
    """Partition key for all remote calls; None when no chat is open.

    Group chats key on the group id, solo chats on the character id.
    """
    if not ctx.chat_id:
        return None
    prefix = ctx.group_id or ctx.character_id or "unknown"
    return f"{prefix}_{ctx.chat_id}"


def get_current_character_name(ctx: HostContext) -> str:
    return ctx.name2 or ctx.character_id or "Character"


def get_speaker_name(entry: ChatEntry, ctx: HostContext) -> str:
    if entry.is_user:
        return ctx.name1 or "User"
    # group chats carry the speaker on each message
    return entry.name or ctx.name2 or ctx.character_id or "Character"


def build_message(
    entry: ChatEntry,
    message_id: int,
    ctx: HostContext,
    role: str | None = None,
) -> ChatMessage:
    if role is None:
        role = "user" if entry.is_user else "assistant"
    return ChatMessage(
        message_id=message_id,
        role=role,
        content=entry.mes or "",
        speaker=get_speaker_name(entry, ctx),
    )


def latest_message(ctx: HostContext, role: str | None = None) -> ChatMessage | None:
    """Wire message for the newest log entry, or None for an empty log."""
    if not ctx.chat:
        return None
    entry = ctx.chat[-1]
    if entry is None:
        return None
    return build_message(entry, len(ctx.chat), ctx, role=role)


def chat_to_messages(ctx: HostContext) -> list[ChatMessage]:
    """The whole log as wire messages, ``message_id`` ascending from 1."""
    return [
        build_message(entry, index + 1, ctx)
        for index, entry in enumerate(ctx.chat)
    ]


def get_recent_context(
    ctx: HostContext,
    count: int = RECENT_CONTEXT_MESSAGES,
    max_chars: int = RECENT_CONTEXT_MAX_CHARS,
) -> str:
    """Last ``count`` messages joined by blank lines, capped at ``max_chars``.

    Truncation keeps the tail so the newest content always survives.
    """
    if count <= 0:
        return ""
    combined = "\n\n".join(entry.mes or "" for entry in ctx.chat[-count:])
    if len(combined) > max_chars:
        return combined[-max_chars:]
    return combined


def get_current_message_id(ctx: HostContext) -> int:
    return len(ctx.chat)


def get_active_characters(
    ctx: HostContext,
    lookback: int = ACTIVE_CHARACTER_LOOKBACK,
) -> list[str]:
    """Distinct speakers of the recent log, in order of first appearance."""
    characters: list[str] = []
    for entry in ctx.chat[-lookback:]:
        speaker = get_speaker_name(entry, ctx)
        if speaker and speaker not in characters:
            characters.append(speaker)

    if characters:
        return characters

    # Empty log: fall back to the names the host knows about
    for name in (ctx.name2, ctx.name1):
        if name and name not in characters:
            characters.append(name)
    if ctx.group_id:
        for group in ctx.groups:
            if group.id != ctx.group_id:
                continue
            for member in group.members:
                if member and member not in characters:
                    characters.append(member)
    return characters
