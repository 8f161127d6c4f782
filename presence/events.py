"""
Host event subscription.

The presence engine listens to four host events, each delivering an opaque
state snapshot:

  - message-received    -- a new message landed in the open chat
  - chat-changed        -- the user switched chats
  - character-selected  -- a character was selected
  - group-selected      -- a group was selected

Any host object with an ``on(event_name, handler)`` method can drive the
engine. EventBus is the in-process implementation used by Python hosts
(and by the snapshot-file host). Errors in handlers are caught and logged
but never propagate into the emitter.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MESSAGE_RECEIVED = "message-received"
CHAT_CHANGED = "chat-changed"
CHARACTER_SELECTED = "character-selected"
GROUP_SELECTED = "group-selected"

HOST_EVENTS = (MESSAGE_RECEIVED, CHAT_CHANGED, CHARACTER_SELECTED, GROUP_SELECTED)

Handler = Callable[[Any], Any]


class EventBus:
    """
    Registers and fires handlers for named host events.

    Usage:
        bus = EventBus()
        bus.on("message-received", handler)
        await bus.emit("message-received", snapshot)
    """

    def __init__(self):
        # event_name -> [handler_fn, ...]
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, event_name: str, handler: Handler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)

    def off(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def emit(self, event_name: str, snapshot: Optional[Any] = None) -> None:
        """
        Fire all handlers registered for an event, in registration order.

        Supports both sync and async handlers.
        """
        for fn in list(self._handlers.get(event_name, [])):
            try:
                result = fn(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Error in handler for '%s': %s", event_name, e)
