"""Tests for presence/events.py -- the in-process event bus."""

import pytest

from presence.events import CHAT_CHANGED, HOST_EVENTS, MESSAGE_RECEIVED, EventBus


def test_host_events():
    assert HOST_EVENTS == ("message-received", "chat-changed", "character-selected", "group-selected")


@pytest.mark.asyncio
async def test_emit_calls_sync_and_async_handlers_in_order():
    bus = EventBus()
    calls = []

    def first(snapshot):
        calls.append(("first", snapshot))

    async def second(snapshot):
        calls.append(("second", snapshot))

    bus.on(MESSAGE_RECEIVED, first)
    bus.on(MESSAGE_RECEIVED, second)
    await bus.emit(MESSAGE_RECEIVED, {"chatId": "c"})

    assert calls == [("first", {"chatId": "c"}), ("second", {"chatId": "c"})]


@pytest.mark.asyncio
async def test_emit_only_reaches_matching_event():
    bus = EventBus()
    calls = []
    bus.on(CHAT_CHANGED, calls.append)
    await bus.emit(MESSAGE_RECEIVED, {})
    assert calls == []


@pytest.mark.asyncio
async def test_handler_errors_do_not_propagate():
    bus = EventBus()
    calls = []

    def broken(snapshot):
        raise RuntimeError("boom")

    bus.on(CHAT_CHANGED, broken)
    bus.on(CHAT_CHANGED, calls.append)
    await bus.emit(CHAT_CHANGED, "snap")

    assert calls == ["snap"]


@pytest.mark.asyncio
async def test_off_removes_handler():
    bus = EventBus()
    calls = []
    bus.on(CHAT_CHANGED, calls.append)
    bus.off(CHAT_CHANGED, calls.append)
    bus.off(CHAT_CHANGED, calls.append)  # second removal is a no-op
    await bus.emit(CHAT_CHANGED, "snap")

    assert calls == []
    assert bus.handler_count(CHAT_CHANGED) == 0


@pytest.mark.asyncio
async def test_emit_without_handlers():
    await EventBus().emit("unknown-event")
