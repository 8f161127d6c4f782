"""
Session context extraction.

Reads a host ``getContext()``-style snapshot and classifies it into exactly
one subject kind (character, group, or none), producing an immutable
SessionContext for the presence pipeline.

Snapshot keys understood (all optional):

- ``characterId`` + ``characters``  -- active character by index/key,
  or ``character`` as a direct mapping
- ``groupId`` + ``groups``          -- active group by id,
  or ``group`` as a direct mapping
- ``chat``                          -- list of messages with a ``mes`` body
- ``chatId``                        -- identifier of the open chat
- ``model`` / ``onlineStatus``      -- model in use
- ``chatCompletionSource`` / ``mainApi`` / ``provider`` -- provider in use

Nothing here raises on malformed input; absent fields resolve to defaults.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

DEFAULT_CHARACTER_NAME = "Unknown"
DEFAULT_GROUP_NAME = "Group Chat"

# onlineStatus values that mean "no model connected"
_OFFLINE_STATUSES = {"no_connection", "offline", ""}

_EMPTY: Mapping = {}


class SubjectKind(str, Enum):
    CHARACTER = "character"
    GROUP = "group"
    NONE = "none"


@dataclass(frozen=True)
class SessionContext:
    kind: SubjectKind
    subject_name: str
    message_count: int
    raw_avatar_ref: str
    provider_raw: str
    model_raw: str
    session_start_time: int
    session_key: str
    transcript: Tuple[str, ...] = ()


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionClock:
    """
    Remembers when the current session started.

    The start time is kept as long as successive extractions report the same
    session key and resets when the key changes (new chat, new subject).
    """

    def __init__(self):
        self._key: Optional[str] = None
        self._started_at: int = 0

    def start_for(self, session_key: str, now: int) -> int:
        if session_key != self._key:
            self._key = session_key
            self._started_at = now
        return self._started_at

    def reset(self) -> None:
        self._key = None
        self._started_at = 0


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _is_set(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return isinstance(value, int)


def _lookup_character(state: Mapping) -> Optional[Mapping]:
    direct = state.get("character")
    if isinstance(direct, Mapping):
        return direct

    character_id = state.get("characterId")
    if not _is_set(character_id):
        return None

    characters = state.get("characters")
    if isinstance(characters, Mapping):
        found = characters.get(character_id, characters.get(str(character_id)))
        return found if isinstance(found, Mapping) else _EMPTY
    if isinstance(characters, (list, tuple)):
        try:
            index = int(character_id)
        except (ValueError, TypeError):
            return _EMPTY
        if not 0 <= index < len(characters):
            return _EMPTY
        found = characters[index]
        return found if isinstance(found, Mapping) else _EMPTY
    return _EMPTY


def _lookup_group(state: Mapping) -> Optional[Mapping]:
    direct = state.get("group")
    if isinstance(direct, Mapping):
        return direct

    group_id = state.get("groupId")
    if not _is_set(group_id):
        return None

    groups = state.get("groups")
    if isinstance(groups, (list, tuple)):
        for group in groups:
            if isinstance(group, Mapping) and str(group.get("id")) == str(group_id):
                return group
    return _EMPTY


def classify(host_state: Any) -> Tuple[SubjectKind, Mapping]:
    """Return the subject kind and the subject's own mapping.

    A character selection takes precedence over a group selection when a
    snapshot (incorrectly) reports both.
    """
    state = host_state if isinstance(host_state, Mapping) else _EMPTY

    character = _lookup_character(state)
    if character is not None:
        return SubjectKind.CHARACTER, character

    group = _lookup_group(state)
    if group is not None:
        return SubjectKind.GROUP, group

    return SubjectKind.NONE, _EMPTY


def _transcript(state: Mapping) -> Tuple[int, Tuple[str, ...]]:
    chat = state.get("chat")
    if not isinstance(chat, (list, tuple)):
        return 0, ()
    bodies = tuple(
        message["mes"]
        for message in chat
        if isinstance(message, Mapping) and isinstance(message.get("mes"), str)
    )
    return len(chat), bodies


def _model(state: Mapping) -> str:
    model = _text(state.get("model"))
    if model:
        return model
    status = _text(state.get("onlineStatus"))
    return "" if status.lower() in _OFFLINE_STATUSES else status


def _provider(state: Mapping) -> str:
    for key in ("chatCompletionSource", "mainApi", "provider"):
        value = _text(state.get(key))
        if value:
            return value
    return ""


def extract_context(
    host_state: Any,
    *,
    clock: Optional[SessionClock] = None,
    now: Optional[int] = None,
) -> Optional[SessionContext]:
    """
    Build a SessionContext from a host snapshot, or None if no subject is active.

    Args:
        host_state: Snapshot mapping from the host (anything else counts as empty).
        clock:      Optional SessionClock; without one every extraction starts
                    a new session at ``now``.
        now:        Current time in epoch ms (defaults to the wall clock).
    """
    kind, subject = classify(host_state)
    if kind is SubjectKind.NONE:
        return None

    state = host_state if isinstance(host_state, Mapping) else _EMPTY
    timestamp = now if now is not None else now_ms()
    message_count, transcript = _transcript(state)

    if kind is SubjectKind.CHARACTER:
        name = _text(subject.get("name")) or DEFAULT_CHARACTER_NAME
        avatar_ref = _text(subject.get("avatar"))
        subject_id = avatar_ref or name
    elif kind is SubjectKind.GROUP:
        name = _text(subject.get("name")) or DEFAULT_GROUP_NAME
        avatar_ref = ""
        subject_id = _text(subject.get("id")) or _text(state.get("groupId")) or name
    else:
        raise ValueError(f"Unhandled subject kind: {kind!r}")

    session_key = f"{kind.value}:{subject_id}:{_text(state.get('chatId'))}"
    started_at = clock.start_for(session_key, timestamp) if clock is not None else timestamp

    return SessionContext(
        kind=kind,
        subject_name=name,
        message_count=message_count,
        raw_avatar_ref=avatar_ref,
        provider_raw=_provider(state),
        model_raw=_model(state),
        session_start_time=started_at,
        session_key=session_key,
        transcript=transcript,
    )
