"""Settings loading, validation, persistence, and debounced save."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .types import DEFAULT_ANON_KEY, DEFAULT_API_BASE, Settings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LOREVAULT_CONFIG"

CONFIG_FILENAMES = [
    "lorevault.yaml",
    "lorevault.yml",
    "lorevault.json",
]


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _build_settings(raw: dict[str, Any]) -> Settings:
    """Build Settings from a raw dict. Unknown keys are ignored."""
    return Settings(
        api_key=raw.get("api_key") or "",
        enabled=bool(raw.get("enabled", True)),
        token_budget=int(raw.get("token_budget", 1000)),
        api_base=(raw.get("api_base") or DEFAULT_API_BASE).rstrip("/"),
        anon_key=raw.get("anon_key") or DEFAULT_ANON_KEY,
        timeout=float(raw.get("timeout", 30.0)),
    )


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    return asdict(settings)


def validate_settings(settings: Settings) -> list[str]:
    """Validate settings. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if settings.token_budget <= 0:
        errors.append(f"token_budget must be > 0 (got {settings.token_budget})")

    parsed = urlparse(settings.api_base)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"api_base must be an http(s) URL (got '{settings.api_base}')")

    if settings.timeout <= 0:
        errors.append(f"timeout must be > 0 (got {settings.timeout})")

    if not settings.anon_key:
        errors.append("anon_key must not be empty")

    return errors


def _read_file(path: Path) -> dict[str, Any]:
    text = path.read_text()
    if path.suffix == ".json":
        return json.loads(text) if text.strip() else {}
    return yaml.safe_load(text) or {}


def load_settings(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> Settings:
    """Load settings from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_settings(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        return _build_settings({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    return _build_settings(_read_file(path))


class FileSettingsStore:
    """SettingsStore backed by a YAML or JSON file.

    A missing file loads as defaults; ``save`` creates it.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Settings:
        if not self.path.is_file():
            return _build_settings({})
        return _build_settings(_read_file(self.path))

    def save(self, settings: Settings) -> None:
        data = settings_to_dict(settings)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.suffix == ".json":
            self.path.write_text(json.dumps(data, indent=2) + "\n")
        else:
            self.path.write_text(yaml.safe_dump(data, sort_keys=False))
        logger.debug("Saved settings to %s", self.path)


class MemorySettingsStore:
    """SettingsStore kept in memory; for embedding hosts and tests."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self.save_count = 0

    def load(self) -> Settings:
        return self._settings

    def save(self, settings: Settings) -> None:
        self._settings = settings
        self.save_count += 1


class DebouncedSaver:
    """Coalesce repeated saves into one write after ``delay`` seconds.

    Inside a running event loop the write is scheduled with ``call_later``
    and each new request pushes it back. Without a loop it saves at once.
    """

    def __init__(self, store, delay: float = 1.0) -> None:
        self._store = store
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._pending: Settings | None = None

    def request(self, settings: Settings) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._store.save(settings)
            return

        self._pending = settings
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self.flush)

    def flush(self) -> None:
        """Write any pending settings now."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is None:
            return
        pending, self._pending = self._pending, None
        self._store.save(pending)

    @property
    def pending(self) -> bool:
        return self._pending is not None
