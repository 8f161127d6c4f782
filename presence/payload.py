"""Presence payload wire record and its assembler.

``assemble()`` is a pure function: given the extracted context, token count,
resolved avatar URL, and pretty model/provider names it builds the exact
record POSTed to the agent. No I/O happens here.
"""

from dataclasses import dataclass
from typing import Any, Dict

from presence.context import SessionContext, SubjectKind
from presence.formatting import format_count, format_tokens

# Discord rejects activity text longer than this
MAX_TEXT_LENGTH = 128


@dataclass(frozen=True)
class PresencePayload:
    details: str
    state: str
    large_image_key: str
    start_timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "details": self.details,
            "state": self.state,
            "largeImageKey": self.large_image_key,
            "startTimestamp": self.start_timestamp,
        }


def _clip(text: str) -> str:
    if len(text) <= MAX_TEXT_LENGTH:
        return text
    return text[: MAX_TEXT_LENGTH - 3].rstrip() + "..."


def build_details(context: SessionContext, token_count: int) -> str:
    prefix = "In group " if context.kind is SubjectKind.GROUP else "Chatting with "
    suffix = f" • {format_count(context.message_count, 'message')}"
    if token_count > 0:
        suffix += f" • {format_tokens(token_count)} tokens"

    # Only the name is shortened; the counts always fit
    name = context.subject_name
    room = MAX_TEXT_LENGTH - len(prefix) - len(suffix)
    if len(name) > room:
        name = name[: room - 3].rstrip() + "..."
    return prefix + name + suffix


def build_state(context: SessionContext, model_name: str, provider_name: str) -> str:
    if model_name and provider_name:
        line = f"{model_name} via {provider_name}"
    elif model_name:
        line = model_name
    elif provider_name:
        line = f"Using {provider_name}"
    else:
        line = format_count(context.message_count, "message")
    return _clip(line)


def assemble(
    context: SessionContext,
    token_count: int,
    avatar_url: str,
    model_name: str,
    provider_name: str,
) -> PresencePayload:
    """Combine pipeline outputs into the wire payload."""
    return PresencePayload(
        details=build_details(context, token_count or 0),
        state=build_state(context, model_name or "", provider_name or ""),
        large_image_key=avatar_url or "",
        start_timestamp=int(context.session_start_time),
    )
