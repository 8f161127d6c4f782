"""
Snapshot-file host.

Lets the presence engine run outside the chat application: the application
(or a small exporter script) writes its current ``getContext()``-style state
to a JSON file, and this host polls the file, diffs successive snapshots, and
emits the matching host events:

  - chat-changed        -- first snapshot, or ``chatId`` changed
  - character-selected  -- active character changed
  - group-selected      -- active group changed
  - message-received    -- same chat, transcript grew

Unreadable or half-written snapshots are skipped until the next poll.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from presence.events import (
    CHARACTER_SELECTED,
    CHAT_CHANGED,
    GROUP_SELECTED,
    MESSAGE_RECEIVED,
    EventBus,
    Handler,
)
from presence.tokens import estimate_tokens_rough

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


def _selection(snapshot: Dict[str, Any], direct_key: str, id_key: str) -> Any:
    direct = snapshot.get(direct_key)
    if isinstance(direct, dict):
        return direct.get("avatar") or direct.get("id") or direct.get("name")
    return snapshot.get(id_key)


def _chat_length(snapshot: Dict[str, Any]) -> int:
    chat = snapshot.get("chat")
    return len(chat) if isinstance(chat, list) else 0


def diff_events(old: Optional[Dict[str, Any]], new: Dict[str, Any]) -> List[str]:
    """Host events implied by moving from snapshot ``old`` to ``new``."""
    if old is None:
        return [CHAT_CHANGED]

    events: List[str] = []
    if _selection(old, "character", "characterId") != _selection(new, "character", "characterId"):
        events.append(CHARACTER_SELECTED)
    if _selection(old, "group", "groupId") != _selection(new, "group", "groupId"):
        events.append(GROUP_SELECTED)
    if old.get("chatId") != new.get("chatId"):
        events.append(CHAT_CHANGED)
    elif not events and _chat_length(new) > _chat_length(old):
        events.append(MESSAGE_RECEIVED)
    return events


class SnapshotFileHost:
    """Host backed by a JSON snapshot file, polled every ``poll_interval`` seconds."""

    def __init__(self, path: Path, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.bus = EventBus()
        self._snapshot: Optional[Dict[str, Any]] = None
        self._mtime_ns: Optional[int] = None
        self._running = False
        self._poll_task: Optional[asyncio.Task] = None

    # Host surface consumed by PresenceEngine

    def on(self, event_name: str, handler: Handler) -> None:
        self.bus.on(event_name, handler)

    def off(self, event_name: str, handler: Handler) -> None:
        self.bus.off(event_name, handler)

    def get_context(self) -> Optional[Dict[str, Any]]:
        return self._snapshot

    def count_tokens(self, text: str) -> int:
        return estimate_tokens_rough(text)

    # Polling

    def read_snapshot(self) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable snapshot %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.debug("Skipping snapshot %s: expected a JSON object", self.path)
            return None
        return data

    async def poll_once(self) -> List[str]:
        """Re-read the snapshot if it changed on disk and emit resulting events."""
        try:
            mtime_ns = self.path.stat().st_mtime_ns
        except OSError:
            return []
        if mtime_ns == self._mtime_ns:
            return []

        snapshot = self.read_snapshot()
        if snapshot is None:
            return []
        self._mtime_ns = mtime_ns

        events = diff_events(self._snapshot, snapshot)
        self._snapshot = snapshot
        for event_name in events:
            await self.bus.emit(event_name, snapshot)
        return events

    async def start(self) -> None:
        self._running = True
        await self.poll_once()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Watching %s every %ss", self.path, self.poll_interval)

    async def stop(self) -> None:
        self._running = False
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except Exception as e:
                logger.warning("Snapshot poll failed: %s", e)
