"""Tests for presence/tokens.py."""

import asyncio

import pytest

from presence.tokens import count_tokens, estimate_tokens_rough


def test_estimate_tokens_rough():
    assert estimate_tokens_rough("") == 0
    assert estimate_tokens_rough("abcd" * 10) == 10


@pytest.mark.asyncio
async def test_no_counter_returns_zero():
    assert await count_tokens(["hello", "world"], None) == 0


@pytest.mark.asyncio
async def test_sync_counter_gets_newline_joined_transcript():
    seen = []

    def counter(text):
        seen.append(text)
        return 42

    assert await count_tokens(["first", "second", "third"], counter) == 42
    assert seen == ["first\nsecond\nthird"]


@pytest.mark.asyncio
async def test_async_counter_is_awaited():
    async def counter(text):
        await asyncio.sleep(0)
        return len(text)

    assert await count_tokens(["ab", "cd"], counter) == 5


@pytest.mark.asyncio
async def test_future_result_is_awaited():
    loop = asyncio.get_running_loop()

    def counter(text):
        future = loop.create_future()
        future.set_result(7)
        return future

    assert await count_tokens(["x"], counter) == 7


@pytest.mark.asyncio
async def test_custom_awaitable_result_is_awaited():
    class Pending:
        def __await__(self):
            return asyncio.sleep(0, result=9).__await__()

    assert await count_tokens(["x"], lambda text: Pending()) == 9


@pytest.mark.asyncio
async def test_failing_counter_returns_zero():
    def counter(text):
        raise RuntimeError("tokenizer not loaded")

    assert await count_tokens(["x"], counter) == 0


@pytest.mark.asyncio
async def test_failing_async_counter_returns_zero():
    async def counter(text):
        raise ConnectionError("backend down")

    assert await count_tokens(["x"], counter) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("result, expected", [
    ("12", 12),
    (3.9, 3),
    (-5, 0),
    (None, 0),
    ("many", 0),
    (True, 0),
])
async def test_result_is_coerced_to_non_negative_int(result, expected):
    assert await count_tokens(["x"], lambda text: result) == expected


@pytest.mark.asyncio
async def test_empty_transcript_still_calls_counter():
    seen = []
    assert await count_tokens([], lambda text: seen.append(text) or 0) == 0
    assert seen == [""]
