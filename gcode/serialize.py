"""Plain-text rendering of a conversation for the summarisation model."""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from .messages import (
    AssistantMessage,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)

# Caps tool result output so one huge blob cannot swamp the summariser.
_MAX_TOOL_RESULT_CHARS = 2000


def _encode_arguments(arguments: Any) -> str:
    try:
        return json.dumps(arguments, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return ""


def _truncate(text: str) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= _MAX_TOOL_RESULT_CHARS:
        return text
    return encoded[:_MAX_TOOL_RESULT_CHARS].decode("utf-8", errors="ignore") + "... (truncated)"


def _assistant_blocks(msg: AssistantMessage) -> Iterable[str]:
    for block in msg.content:
        if isinstance(block, TextContent):
            yield f"[Assistant]: {block.text}\n\n"
        elif isinstance(block, ThinkingContent):
            if block.thinking:
                yield f"[Assistant thinking]: {block.thinking}\n\n"
        elif isinstance(block, ToolCall):
            yield f"[Assistant tool calls]: {block.name}({_encode_arguments(block.arguments)})\n\n"


def serialize_conversation(messages: Optional[Iterable[Any]]) -> str:
    """Render messages as labelled text blocks separated by blank lines."""
    parts = []
    for msg in messages or []:
        if isinstance(msg, UserMessage):
            text = "".join(b.text for b in msg.content if isinstance(b, TextContent))
            parts.append(f"[User]: {text}\n\n")
        elif isinstance(msg, AssistantMessage):
            parts.extend(_assistant_blocks(msg))
        elif isinstance(msg, ToolResultMessage):
            text = "\n".join(b.text for b in msg.content if isinstance(b, TextContent))
            parts.append(f"[Tool result]: {_truncate(text)}\n\n")
    return "".join(parts)