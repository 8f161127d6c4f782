"""
Presence runner - process entry point for the presence bridge.

This module provides:
- setup_logging(): console + rotating file logging under ~/.sillyrpc/logs
- bootstrap_settings(): config.yaml/env settings, refined by the plugin endpoint
- run_presence(): run the engine against a snapshot-file host until stopped

Usage:
    python -m presence.run ~/.sillyrpc/state.json

    # Or from the CLI
    sillyrpc watch ~/.sillyrpc/state.json
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from sillyrpc_constants import SILLYRPC_HOME

from presence.agent_client import AgentClient
from presence.avatar_cache import JsonFileStore
from presence.config import Settings, get_update_interval, load_remote_settings, load_settings
from presence.dispatcher import PresenceEngine
from presence.platforms.snapshot_file import DEFAULT_POLL_INTERVAL, SnapshotFileHost

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_env() -> None:
    """Load ~/.sillyrpc/.env first, then a project .env as fallback."""
    env_path = SILLYRPC_HOME / ".env"
    if env_path.exists():
        try:
            load_dotenv(env_path, encoding="utf-8")
        except UnicodeDecodeError:
            load_dotenv(env_path, encoding="latin-1")
    load_dotenv()


def setup_logging(level: Optional[str] = None, log_dir: Optional[Path] = None) -> Path:
    """Configure the ``presence`` logger tree. Returns the log file path."""
    level_name = (level or os.getenv("SILLYRPC_LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)

    log_dir = log_dir or (SILLYRPC_HOME / "logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "presence.log"

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger("presence")
    root.setLevel(log_level)
    root.handlers = [file_handler, console_handler]
    root.propagate = False
    return log_file


async def bootstrap_settings(use_remote: bool = True) -> Settings:
    """Local settings, then the plugin's stored settings if reachable."""
    settings = load_settings()
    if not use_remote:
        return settings
    client = AgentClient(settings.base_url)
    try:
        return await load_remote_settings(client, fallback=settings)
    finally:
        await client.aclose()


async def run_presence(
    state_file: Path,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    *,
    settings: Optional[Settings] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> bool:
    """
    Run the presence engine against ``state_file`` until ``stop_event`` is set
    (or SIGINT/SIGTERM arrives).

    Returns False if the engine could not start.
    """
    settings = settings or await bootstrap_settings()
    host = SnapshotFileHost(state_file, poll_interval=poll_interval)
    engine = PresenceEngine(
        host,
        settings,
        avatar_store=JsonFileStore(),
        interval_seconds=get_update_interval(),
    )
    if not await engine.start():
        await engine.stop()
        return False

    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            pass  # Windows event loops lack add_signal_handler

    try:
        await host.start()
        await stop.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await host.stop()
        await engine.stop()
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="SillyRPC presence bridge")
    parser.add_argument("state_file", type=Path, help="JSON snapshot of the chat host's context")
    parser.add_argument("--poll", type=float, default=DEFAULT_POLL_INTERVAL,
                        help="Snapshot poll interval in seconds")
    parser.add_argument("--no-remote-settings", action="store_true",
                        help="Skip fetching settings from the plugin endpoint")
    args = parser.parse_args(argv)

    load_env()
    log_file = setup_logging()
    logger.info("Logging to %s", log_file)

    async def _run() -> bool:
        settings = await bootstrap_settings(use_remote=not args.no_remote_settings)
        return await run_presence(args.state_file, args.poll, settings=settings)

    try:
        ok = asyncio.run(_run())
    except KeyboardInterrupt:
        ok = True
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
