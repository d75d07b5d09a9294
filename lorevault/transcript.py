"""TranscriptHost: a HostContextProvider read from a chat export file.

Accepted shapes (JSON or YAML)::

    [{"mes": "...", "is_user": true, "name": "Alice"}, ...]

    {"chat_id": "...", "character_id": "...", "group_id": null,
     "name1": "...", "name2": "...", "chat": [...], "groups": [...]}

``role``/``content`` pairs (OpenAI style) are accepted in place of
``is_user``/``mes``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import ChatEntry, ChatGroup, HostContext


def _parse_entry(raw: Any) -> ChatEntry:
    if isinstance(raw, str):
        return ChatEntry(mes=raw)
    if "is_user" in raw:
        is_user = bool(raw["is_user"])
    else:
        is_user = raw.get("role") == "user"
    return ChatEntry(
        mes=raw.get("mes", raw.get("content", "")) or "",
        is_user=is_user,
        name=raw.get("name") or raw.get("speaker"),
    )


def host_context_from_dict(raw: dict | list, chat_id: str | None = None) -> HostContext:
    if isinstance(raw, list):
        raw = {"chat": raw}
    groups = [
        ChatGroup(
            id=str(g.get("id", "")),
            members=[m.get("name", "") if isinstance(m, dict) else str(m) for m in g.get("members") or []],
        )
        for g in raw.get("groups") or []
    ]
    return HostContext(
        chat_id=chat_id or raw.get("chat_id"),
        character_id=raw.get("character_id"),
        group_id=raw.get("group_id"),
        name1=raw.get("name1"),
        name2=raw.get("name2"),
        chat=[_parse_entry(e) for e in raw.get("chat") or []],
        groups=groups,
    )


class TranscriptHost:
    """Serves a fixed HostContext loaded from ``path``.

    A bare list of messages gets the file stem as its chat id.
    """

    def __init__(self, path: str | Path, chat_id: str | None = None) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"Transcript not found: {self.path}")
        text = self.path.read_text()
        if self.path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text) or []
        if isinstance(raw, list) and chat_id is None:
            chat_id = self.path.stem
        self._context = host_context_from_dict(raw, chat_id=chat_id)

    def get_context(self) -> HostContext:
        return self._context
