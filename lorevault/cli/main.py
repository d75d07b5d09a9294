"""CLI: lorevault register, status, chats, memories, import, retrieve, delete, upgrade, billing, config validate."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ..bridge import EventBridge
from ..config import FileSettingsStore, _discover_config, load_settings, validate_settings
from ..core.formatting import daily_usage, format_bytes, format_number, storage_level
from ..events import PromptRegistry
from ..transcript import TranscriptHost
from ..types import ConfigurationError, HostContext, LoreVaultError

DEFAULT_CONFIG_NAME = "lorevault.yaml"


class _NoChatHost:
    """Host with no open chat, for commands that act on the account."""

    def get_context(self) -> HostContext:
        return HostContext()


class ConsoleNotifier:
    def notify(self, level: str, message: str) -> None:
        stream = sys.stderr if level in ("error", "warning") else sys.stdout
        print(message, file=stream)


class ConsoleConfirmer:
    def confirm(self, text: str) -> bool:
        print(text)
        try:
            answer = input("Continue? [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")

    def prompt(self, text: str) -> str | None:
        try:
            return input(f"{text} ")
        except EOFError:
            return None


def _config_path(args) -> Path:
    if args.config:
        return Path(args.config)
    return _discover_config() or Path.cwd() / DEFAULT_CONFIG_NAME


def _get_bridge(args, transcript: str | None = None) -> EventBridge:
    host = TranscriptHost(transcript, chat_id=getattr(args, "chat_id", None)) if transcript else _NoChatHost()
    return EventBridge(
        FileSettingsStore(_config_path(args)),
        host,
        PromptRegistry(),
        notifier=ConsoleNotifier(),
        confirmer=ConsoleConfirmer(),
    )


def _run(bridge: EventBridge, coro):
    try:
        return asyncio.run(coro)
    except LoreVaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        bridge.flush_settings()


def cmd_register(args):
    """Register an email and store the issued API key."""
    bridge = _get_bridge(args)
    registration = _run(bridge, bridge.register(args.email))
    print(f"API key saved to {_config_path(args)}")
    if registration.existing_user:
        print("Existing account restored.")


def cmd_status(args):
    """Show tier, storage, and daily usage."""
    bridge = _get_bridge(args)
    if not bridge.settings.api_key:
        print("Not registered. Run: lorevault register EMAIL")
        sys.exit(1)

    usage = _run(bridge, bridge.test_connection())
    if usage is None:
        print("Status:   Disconnected")
        sys.exit(1)

    print(f"Status:   Connected ({usage.tier})")
    print(f"Enabled:  {'yes' if bridge.settings.enabled else 'no'}")
    level = storage_level(usage.storage_percent)
    print(
        f"Storage:  {format_bytes(usage.storage_used_bytes)} / "
        f"{format_bytes(usage.storage_limit_bytes)} ({usage.storage_percent:g}%)"
        + (f" [{level}]" if level else "")
    )
    print(f"Events:   {format_number(usage.total_events)}")
    print(f"Messages: {format_number(usage.total_messages_processed)}")
    print(f"Saved:    {format_number(usage.tokens_saved_estimate)} tokens")
    print(f"Chats:    {usage.chats}")

    daily = daily_usage(usage)
    if daily is not None:
        print(f"Today:    {daily.used} / {daily.limit} extractions")
        if daily.hint:
            print(f"          {daily.hint}")

    if usage.tier == "free":
        print()
        print("Upgrade:  lorevault upgrade")


def cmd_chats(args):
    """List chats with stored memory."""
    bridge = _get_bridge(args)
    chats = _run(bridge, bridge.list_chats())

    if not chats:
        print("No stored chats")
        return

    print(f"{'Chat':<40} {'Events':>7} {'Messages':>9} {'Updated':>12}")
    print("-" * 71)
    for c in chats:
        chat_id = c.chat_id if len(c.chat_id) <= 40 else c.chat_id[:37] + "..."
        print(f"{chat_id:<40} {c.event_count:>7} {c.message_count:>9} {c.last_updated[:10]:>12}")


def cmd_memories(args):
    """Browse stored memories, one page at a time."""
    bridge = _get_bridge(args)
    browser = bridge.memory_browser()
    browser.state.chat_filter = args.chat or ""
    browser.state.type_filter = args.type or ""
    browser.state.page_size = args.page_size
    browser.state.page = max(0, args.page - 1)

    page = _run(bridge, browser.load())

    if not page.memories:
        print("No memories found")
        return

    for m in page.memories:
        print(f"[{m.event_type or 'event'}] {m.summary}")
        meta = [m.chat_id, m.created_at[:10]]
        if m.location:
            meta.append(m.location)
        print(f"    id={m.id}  {'  '.join(x for x in meta if x)}")
        if m.characters_involved:
            print(f"    characters: {', '.join(m.characters_involved)}")

    if browser.total_pages > 1:
        print()
        print(f"Page {browser.state.page + 1} of {browser.total_pages}")
    if browser.state.type_options:
        print(f"Types: {', '.join(browser.state.type_options)}")


def cmd_import(args):
    """Import a chat transcript in batches."""
    bridge = _get_bridge(args, transcript=args.transcript)

    def _progress(done: int, total: int) -> None:
        print(f"  {done}/{total} messages", file=sys.stderr)

    report = _run(bridge, bridge.import_current_chat(progress=_progress))
    if report is None:
        print("Import cancelled.")
        return
    print(f"Processed {report.processed}/{report.total} messages in {report.batches_sent} batch(es)")
    if report.stopped_by_quota:
        print(bridge.quota.banner, file=sys.stderr)
        sys.exit(2)


def cmd_retrieve(args):
    """Print the memory block that would be injected for a transcript."""
    bridge = _get_bridge(args, transcript=args.transcript)
    if not bridge.active:
        print("LoreVault is not enabled or configured", file=sys.stderr)
        sys.exit(1)
    context = _run(bridge, bridge.retrieve())
    if context:
        print(context)
        sys.exit(0)
    else:
        sys.exit(2)


def cmd_delete(args):
    """Delete stored memory for one chat or the whole account."""
    bridge = _get_bridge(args, transcript=args.current)
    if args.all:
        result = _run(bridge, bridge.delete_scope("all"))
    elif args.current:
        result = _run(bridge, bridge.delete_current_chat())
    else:
        result = _run(bridge, bridge.delete_scope(args.chat))
    if result is None:
        sys.exit(1)


def cmd_upgrade(args):
    bridge = _get_bridge(args)
    url = _run(bridge, bridge.open_upgrade(args.tier))
    if url:
        print(url)


def cmd_billing(args):
    bridge = _get_bridge(args)
    url = _run(bridge, bridge.open_billing_portal(args.return_url))
    if url:
        print(url)


def cmd_set_enabled(args, enabled: bool):
    bridge = _get_bridge(args)
    bridge.set_enabled(enabled)
    bridge.flush_settings()
    print(f"LoreVault {'enabled' if enabled else 'disabled'}.")


def cmd_config_validate(args):
    """Validate config file."""
    try:
        settings = load_settings(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_settings(settings)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  API base:     {settings.api_base}")
        print(f"  Registered:   {'yes' if settings.api_key else 'no'}")
        print(f"  Enabled:      {'yes' if settings.enabled else 'no'}")
        print(f"  Token budget: {settings.token_budget}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lorevault",
        description="Long-term chat memory via the LoreVault service",
    )
    parser.add_argument("--config", "-c", help="Path to settings file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    register_parser = subparsers.add_parser("register", help="Register and store an API key")
    register_parser.add_argument("email", help="Account email")

    subparsers.add_parser("status", help="Show connection and usage")
    subparsers.add_parser("chats", help="List chats with stored memory")

    memories_parser = subparsers.add_parser("memories", help="Browse stored memories")
    memories_parser.add_argument("--chat", help="Only memories of this chat id")
    memories_parser.add_argument("--type", help="Only memories of this event type")
    memories_parser.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    memories_parser.add_argument("--page-size", type=int, default=20)

    import_parser = subparsers.add_parser("import", help="Import a chat transcript")
    import_parser.add_argument("transcript", help="Chat export (JSON or YAML)")
    import_parser.add_argument("--chat-id", help="Chat id override")

    retrieve_parser = subparsers.add_parser("retrieve", help="Retrieve memory for a transcript")
    retrieve_parser.add_argument("transcript", help="Chat export (JSON or YAML)")
    retrieve_parser.add_argument("--chat-id", help="Chat id override")

    delete_parser = subparsers.add_parser("delete", help="Delete stored memory")
    scope = delete_parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--chat", help="Chat id to delete")
    scope.add_argument("--current", metavar="TRANSCRIPT", help="Delete the chat of this transcript")
    scope.add_argument("--all", action="store_true", help="Delete all account data")
    delete_parser.add_argument("--chat-id", help="Chat id override for --current")

    upgrade_parser = subparsers.add_parser("upgrade", help="Print a checkout link")
    upgrade_parser.add_argument("--tier", default="pro")

    billing_parser = subparsers.add_parser("billing", help="Print a billing portal link")
    billing_parser.add_argument("--return-url", default="https://lorevault.app")

    subparsers.add_parser("enable", help="Resume memory capture")
    subparsers.add_parser("disable", help="Pause memory capture")

    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "register":
            cmd_register(args)
        elif args.command == "status":
            cmd_status(args)
        elif args.command == "chats":
            cmd_chats(args)
        elif args.command == "memories":
            cmd_memories(args)
        elif args.command == "import":
            cmd_import(args)
        elif args.command == "retrieve":
            cmd_retrieve(args)
        elif args.command == "delete":
            cmd_delete(args)
        elif args.command == "upgrade":
            cmd_upgrade(args)
        elif args.command == "billing":
            cmd_billing(args)
        elif args.command == "enable":
            cmd_set_enabled(args, True)
        elif args.command == "disable":
            cmd_set_enabled(args, False)
        elif args.command == "config":
            if args.config_command == "validate":
                cmd_config_validate(args)
            else:
                print("Usage: lorevault config validate")
                sys.exit(1)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
