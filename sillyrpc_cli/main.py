"""
SillyRPC command-line interface.

Commands:
    sillyrpc settings show [--remote]
    sillyrpc settings set [--mode local|remote] [--agent-url HOST:PORT | --host H --port P] [--local-only]
    sillyrpc push STATE_FILE [--dry-run]
    sillyrpc watch STATE_FILE [--poll SECONDS]
    sillyrpc cache list
    sillyrpc cache clear

Settings changes are the one user-initiated operation, so their failures are
reported loudly (error message + non-zero exit). Everything else mirrors the
passive update path and only logs.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from presence.agent_client import AgentClient
from presence.avatar_cache import AvatarCacheEntry, JsonFileStore
from presence.config import (
    CONFIG_PATH,
    MODES,
    SettingsSaveError,
    load_remote_settings,
    load_settings,
    save_remote_settings,
    save_settings,
)
from presence.dispatcher import PresenceEngine
from presence.platforms.snapshot_file import DEFAULT_POLL_INTERVAL, SnapshotFileHost
from presence.run import load_env, run_presence, setup_logging
from sillyrpc_cli.colors import Colors, color


def print_header(title: str):
    """Print a section header."""
    print()
    print(color(f"◆ {title}", Colors.CYAN, Colors.BOLD))


def print_info(text: str):
    """Print info text."""
    print(color(f"  {text}", Colors.DIM))


def print_success(text: str):
    """Print success message."""
    print(color(f"✓ {text}", Colors.GREEN))


def print_warning(text: str):
    """Print warning message."""
    print(color(f"⚠ {text}", Colors.YELLOW))


def print_error(text: str):
    """Print error message."""
    print(color(f"✗ {text}", Colors.RED), file=sys.stderr)


# ---------------------------------------------------------------------------
# settings
# ---------------------------------------------------------------------------


def cmd_settings_show(args) -> int:
    settings = load_settings()
    source = "config.yaml"
    if args.remote:
        async def _fetch():
            client = AgentClient(settings.base_url)
            try:
                return await load_remote_settings(client, fallback=settings)
            finally:
                await client.aclose()

        settings = asyncio.run(_fetch())
        source = "plugin (falls back to config.yaml)"

    print_header("SillyRPC settings")
    print(f"  mode:   {settings.mode}")
    print(f"  agent:  {settings.endpoint}")
    print_info(f"source: {source}")
    print_info(f"config: {CONFIG_PATH}")
    return 0


def cmd_settings_set(args) -> int:
    current = load_settings()
    try:
        updated = current
        if args.mode:
            updated = updated.with_mode(args.mode)
        if args.agent_url:
            updated = updated.with_endpoint(args.agent_url)
        elif args.host is not None or args.port is not None:
            updated = updated.with_address(host=args.host, port=args.port)
    except ValueError as e:
        print_error(str(e))
        return 2

    if not args.local_only:
        async def _save():
            client = AgentClient(updated.base_url)
            try:
                await save_remote_settings(client, updated)
            finally:
                await client.aclose()

        try:
            asyncio.run(_save())
        except SettingsSaveError as e:
            print_error(str(e))
            return 1

    try:
        path = save_settings(updated)
    except OSError as e:
        print_error(f"Could not write local config: {e}")
        return 1
    print_info(f"Wrote {path}")

    print_success("Settings saved!")
    print(f"  mode:   {updated.mode}")
    print(f"  agent:  {updated.endpoint}")
    return 0


# ---------------------------------------------------------------------------
# push / watch
# ---------------------------------------------------------------------------


async def _push(state_file: Path, dry_run: bool) -> int:
    host = SnapshotFileHost(state_file)
    snapshot = host.read_snapshot()
    if snapshot is None:
        print_error(f"Could not read a JSON object from {state_file}")
        return 1

    engine = PresenceEngine(host, load_settings(), avatar_store=JsonFileStore())
    try:
        payload = await engine.build_payload(snapshot)
        if payload is None:
            print_warning("No active character or group; nothing to send")
            return 0

        print(json.dumps(payload.to_dict(), indent=2, ensure_ascii=False))
        if dry_run:
            return 0

        delivered = await engine.dispatch_update(payload)
        if delivered:
            print_success(f"Presence sent to {engine.settings.endpoint}")
            return 0
        print_warning(f"Presence update was not delivered to {engine.settings.endpoint}")
        return 1
    finally:
        await engine.stop()


def cmd_push(args) -> int:
    return asyncio.run(_push(args.state_file, args.dry_run))


def cmd_watch(args) -> int:
    log_file = setup_logging()
    print_info(f"Logging to {log_file}")
    try:
        ok = asyncio.run(run_presence(args.state_file, args.poll))
    except KeyboardInterrupt:
        ok = True
    return 0 if ok else 1


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


def cmd_cache_list(args) -> int:
    store = JsonFileStore()
    entries = store.load_all()
    if not entries:
        print_info(f"Avatar cache is empty ({store.path})")
        return 0

    print_header(f"Avatar cache ({len(entries)} entries)")
    for ref, value in sorted(entries.items()):
        entry = AvatarCacheEntry.from_dict(value)
        if entry is None:
            print_warning(f"{ref}: malformed entry")
            continue
        try:
            when = datetime.fromtimestamp(entry.resolved_at).strftime("%Y-%m-%d %H:%M")
        except (OverflowError, OSError, ValueError):
            when = "?"
        print(f"  {ref} -> {entry.resolved_url}  ({when})")
    return 0


def cmd_cache_clear(args) -> int:
    store = JsonFileStore()
    count = len(store.load_all())
    store.clear()
    print_success(f"Cleared {count} cached avatar(s)")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sillyrpc", description="SillyRPC presence bridge")
    sub = parser.add_subparsers(dest="command", required=True)

    settings_p = sub.add_parser("settings", help="Show or change agent settings")
    settings_sub = settings_p.add_subparsers(dest="settings_command", required=True)

    show_p = settings_sub.add_parser("show", help="Show current settings")
    show_p.add_argument("--remote", action="store_true", help="Read settings from the plugin endpoint")
    show_p.set_defaults(func=cmd_settings_show)

    set_p = settings_sub.add_parser("set", help="Change and save settings")
    set_p.add_argument("--mode", choices=MODES)
    addr = set_p.add_mutually_exclusive_group()
    addr.add_argument("--agent-url", help="Agent endpoint as HOST:PORT")
    addr.add_argument("--host", help="Agent host")
    set_p.add_argument("--port", type=int, help="Agent port")
    set_p.add_argument("--local-only", action="store_true", help="Only write config.yaml")
    set_p.set_defaults(func=cmd_settings_set)

    push_p = sub.add_parser("push", help="Send one presence update from a state snapshot")
    push_p.add_argument("state_file", type=Path)
    push_p.add_argument("--dry-run", action="store_true", help="Print the payload without sending")
    push_p.set_defaults(func=cmd_push)

    watch_p = sub.add_parser("watch", help="Keep presence in sync with a state snapshot file")
    watch_p.add_argument("state_file", type=Path)
    watch_p.add_argument("--poll", type=float, default=DEFAULT_POLL_INTERVAL,
                         help="Snapshot poll interval in seconds")
    watch_p.set_defaults(func=cmd_watch)

    cache_p = sub.add_parser("cache", help="Inspect the avatar URL cache")
    cache_sub = cache_p.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("list", help="List cached avatars").set_defaults(func=cmd_cache_list)
    cache_sub.add_parser("clear", help="Remove all cached avatars").set_defaults(func=cmd_cache_clear)

    return parser


def main(argv=None) -> int:
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
