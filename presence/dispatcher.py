"""
Presence update engine.

Runs the presence pipeline and pushes the result to the agent:

    extract context -> (count tokens || resolve avatar) -> assemble -> dispatch

Two triggers feed the same pipeline:
  - host events (message-received, chat-changed, character-selected,
    group-selected), one run per event
  - a fallback timer (30s by default) that re-sends current state so updates
    lost to event delivery gaps are corrected

Runs are fire-and-forget and independent of each other: there is no mutual
exclusion, so two overlapping runs may reach the agent out of order. The
agent keeps whichever payload arrives last. Every run gets a monotonically
increasing run number that shows up in the log lines for that run.

Nothing on this path raises into the host: failed resolution degrades to an
empty avatar, failed sends are logged and dropped.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Set

from sillyrpc_constants import FALLBACK_INTERVAL_SECONDS

from presence.agent_client import AgentClient, AgentRequestError
from presence.avatar_cache import AvatarResolver, KeyValueStore
from presence.config import Settings
from presence.context import SessionClock, extract_context
from presence.events import HOST_EVENTS
from presence.formatting import format_model_name, get_pretty_provider
from presence.payload import PresencePayload, assemble
from presence.tokens import count_tokens

logger = logging.getLogger(__name__)


class PresenceEngine:
    """
    Drives presence updates for one host.

    Args:
        host:             Object exposing ``on(event, handler)`` (required),
                          and optionally ``get_context()`` and
                          ``count_tokens(text)``.
        settings:         Agent settings; the client is built from them
                          unless ``client`` is given.
        client:           Optional AgentClient (shared with the avatar resolver).
        avatar_store:     Backing store for the avatar cache (JSON file by default).
        interval_seconds: Fallback timer period.
    """

    def __init__(
        self,
        host: Any,
        settings: Settings,
        *,
        client: Optional[AgentClient] = None,
        avatar_store: Optional[KeyValueStore] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.host = host
        self.settings = settings
        self._owns_client = client is None
        self.client = client or AgentClient(settings.base_url)
        self.avatars = AvatarResolver(self.client, avatar_store)
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else FALLBACK_INTERVAL_SECONDS
        )
        self.clock = SessionClock()

        self._running = False
        self._sleep = asyncio.sleep
        self._timer_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._handlers: Dict[str, Callable] = {}
        self._last_snapshot: Any = None
        self._run_seq = 0

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Subscribe to host events and start the fallback timer.

        Returns False (engine stays disabled) if the host offers no event
        subscription mechanism.
        """
        if self._running:
            return True

        subscribe = getattr(self.host, "on", None)
        if not callable(subscribe):
            logger.warning("Host has no event subscription; presence updates disabled")
            return False

        for event_name in HOST_EVENTS:
            handler = self._make_handler(event_name)
            try:
                subscribe(event_name, handler)
            except Exception as e:
                logger.warning("Could not subscribe to '%s': %s", event_name, e)
                continue
            self._handlers[event_name] = handler

        self._running = True
        self._timer_task = asyncio.create_task(self._fallback_loop())
        logger.info(
            "Presence engine started (agent=%s, mode=%s, interval=%ss)",
            self.settings.endpoint,
            self.settings.mode,
            self.interval_seconds,
        )
        return True

    async def stop(self) -> None:
        """Stop the timer, unsubscribe, and let in-flight runs finish."""
        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        unsubscribe = getattr(self.host, "off", None)
        if callable(unsubscribe):
            for event_name, handler in self._handlers.items():
                try:
                    unsubscribe(event_name, handler)
                except Exception as e:
                    logger.debug("Could not unsubscribe from '%s': %s", event_name, e)
        self._handlers.clear()

        await self.drain()
        if self._owns_client:
            await self.client.aclose()
        logger.info("Presence engine stopped")

    async def drain(self) -> None:
        """Wait until every outstanding run and send has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def apply_settings(self, settings: Settings) -> None:
        """Point subsequent sends at a newly saved configuration."""
        self.settings = settings
        self.client.base_url = settings.base_url

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _make_handler(self, event_name: str) -> Callable:
        def handler(snapshot: Any = None) -> None:
            self.trigger(event_name, snapshot)

        return handler

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def trigger(self, reason: str, snapshot: Any = None) -> asyncio.Task:
        """Start a pipeline run in the background and return its task."""
        if snapshot is not None:
            self._last_snapshot = snapshot
        return self._spawn(self._run_safely(reason, snapshot))

    async def _fallback_loop(self) -> None:
        while self._running:
            try:
                await self._sleep(self.interval_seconds)
            except asyncio.CancelledError:
                return
            if not self._running:
                return
            self.trigger("timer")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_safely(self, reason: str, snapshot: Any) -> Optional[PresencePayload]:
        try:
            return await self.run_pipeline(snapshot, reason=reason)
        except Exception as e:
            logger.warning("Presence run (%s) failed: %s: %s", reason, type(e).__name__, e)
            return None

    def _current_state(self, snapshot: Any) -> Any:
        accessor = getattr(self.host, "get_context", None)
        if callable(accessor):
            try:
                state = accessor()
                if state is not None:
                    return state
            except Exception as e:
                logger.warning("Host context accessor failed: %s", e)
        if snapshot is not None:
            return snapshot
        return self._last_snapshot

    async def _resolve_avatar(self, avatar_ref: str) -> str:
        try:
            return await self.avatars.resolve(avatar_ref)
        except Exception as e:
            logger.warning("Avatar lookup failed for %s: %s", avatar_ref, e)
            return ""

    async def run_pipeline(self, snapshot: Any = None, reason: str = "manual") -> Optional[PresencePayload]:
        """Run one full update cycle. Returns the dispatched payload, or None
        when no character or group is active (nothing is sent)."""
        self._run_seq += 1
        run_id = self._run_seq

        payload = await self.build_payload(snapshot)
        if payload is None:
            logger.debug("[run %d] %s: no active character or group, nothing to send", run_id, reason)
            return None

        logger.debug("[run %d] %s: %s | %s", run_id, reason, payload.details, payload.state)
        self.dispatch_update(payload, run_id=run_id)
        return payload

    async def build_payload(self, snapshot: Any = None) -> Optional[PresencePayload]:
        """Extract, count, resolve, and assemble without sending anything."""
        context = extract_context(self._current_state(snapshot), clock=self.clock)
        if context is None:
            return None

        counter = getattr(self.host, "count_tokens", None)
        token_count, avatar_url = await asyncio.gather(
            count_tokens(context.transcript, counter if callable(counter) else None),
            self._resolve_avatar(context.raw_avatar_ref),
        )

        return assemble(
            context,
            token_count,
            avatar_url,
            format_model_name(context.model_raw),
            get_pretty_provider(context.provider_raw),
        )

    def dispatch_update(self, payload: PresencePayload, run_id: Optional[int] = None) -> asyncio.Task:
        """Send ``payload`` without blocking the caller."""
        return self._spawn(self._send_update(payload, run_id))

    async def _send_update(self, payload: PresencePayload, run_id: Optional[int]) -> bool:
        try:
            status = await self.client.post_update(payload.to_dict())
        except AgentRequestError as e:
            logger.warning("[run %s] Presence update not delivered: %s", run_id, e)
            return False
        except Exception as e:
            logger.warning("[run %s] Presence update failed: %s: %s", run_id, type(e).__name__, e)
            return False
        logger.debug("[run %s] Presence update delivered (HTTP %s)", run_id, status)
        return True
