"""
Avatar URL cache for presence updates.

The agent can only show images it can reach by URL, so each character's raw
avatar reference (e.g. ``"seraphina.png"``) is uploaded/resolved once via the
agent and the resulting URL is cached keyed by that raw reference. Entries
never expire within a process; failed resolutions are not cached and are
retried on next use.

Cache location: ~/.sillyrpc/avatar_cache.json
"""

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from sillyrpc_constants import SILLYRPC_HOME

from presence.agent_client import AgentClient, AgentRequestError

logger = logging.getLogger(__name__)

CACHE_PATH = SILLYRPC_HOME / "avatar_cache.json"


@dataclass(frozen=True)
class AvatarCacheEntry:
    resolved_url: str
    resolved_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {"resolved_url": self.resolved_url, "resolved_at": self.resolved_at}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["AvatarCacheEntry"]:
        """Rebuild an entry from persisted data; returns None if malformed."""
        if not isinstance(data, dict):
            return None
        url = data.get("resolved_url")
        if not url or not isinstance(url, str):
            return None
        try:
            resolved_at = float(data.get("resolved_at", 0.0))
        except (TypeError, ValueError):
            resolved_at = 0.0
        return cls(resolved_url=url, resolved_at=resolved_at)


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------


class KeyValueStore(ABC):
    """Capability interface for the cache's backing storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def load_all(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def persist(self) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        for key in list(self.load_all()):
            self.delete(key)
        self.persist()


class MemoryStore(KeyValueStore):
    """Process-local store. persist() is a no-op."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def load_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def persist(self) -> None:
        pass


class JsonFileStore(KeyValueStore):
    """
    Dict held in memory and written through to a JSON file on persist().

    A missing, unreadable, or corrupt file loads as an empty store.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else CACHE_PATH
        self._data: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable avatar cache %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring avatar cache %s: expected a JSON object", self.path)
            return {}
        return data

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def load_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(self._data, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, self.path)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AvatarResolver:
    """
    Resolves raw avatar references to displayable URLs, memoizing successes.

    Usage:
        resolver = AvatarResolver(client, JsonFileStore())
        url = await resolver.resolve("seraphina.png")   # "" when unavailable
    """

    def __init__(self, client: AgentClient, store: Optional[KeyValueStore] = None):
        self.client = client
        self.store = store if store is not None else JsonFileStore()
        self._entries: Dict[str, AvatarCacheEntry] = {}
        for key, value in self.store.load_all().items():
            entry = AvatarCacheEntry.from_dict(value)
            if entry is not None:
                self._entries[key] = entry

    def cached_entries(self) -> Dict[str, AvatarCacheEntry]:
        return dict(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.store.clear()

    async def resolve(self, avatar_ref: Optional[str]) -> str:
        """Return the URL for ``avatar_ref``, or ``""`` if none is available."""
        if not avatar_ref:
            return ""

        entry = self._entries.get(avatar_ref)
        if entry is not None:
            return entry.resolved_url

        try:
            url = await self.client.upload_avatar(avatar_ref)
        except AgentRequestError as e:
            logger.warning("Avatar resolution failed for %s: %s", avatar_ref, e)
            return ""

        entry = AvatarCacheEntry(resolved_url=url, resolved_at=time.time())
        self._entries[avatar_ref] = entry
        self.store.set(avatar_ref, entry.to_dict())
        try:
            self.store.persist()
        except OSError as e:
            logger.warning("Could not persist avatar cache: %s", e)
        logger.debug("Resolved avatar %s -> %s", avatar_ref, url)
        return url
