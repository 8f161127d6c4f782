"""Token counting for the visible chat transcript.

Delegates to whatever counting capability the host offers. A missing or
failing counter yields 0 so the presence pipeline always completes.
"""

import inspect
import logging
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], Any]


def estimate_tokens_rough(text: str) -> int:
    """Rough token estimate (~4 chars/token) for hosts without a tokenizer."""
    if not text:
        return 0
    return len(text) // 4


async def count_tokens(transcript_texts: Iterable[str], counter: Optional[TokenCounter]) -> int:
    """Count tokens over the newline-joined transcript, in transcript order.

    ``counter`` may be sync or async; its result is coerced to a
    non-negative int.
    """
    if counter is None:
        return 0

    text = "\n".join(transcript_texts)
    try:
        result = counter(text)
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        logger.warning("Token counter failed: %s: %s", type(e).__name__, e)
        return 0

    if isinstance(result, bool):
        return 0
    try:
        return max(int(result), 0)
    except (TypeError, ValueError):
        logger.debug("Token counter returned non-numeric result: %r", result)
        return 0
