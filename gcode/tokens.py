"""Rough token estimation for messages and whole contexts."""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from .messages import (
    AssistantMessage,
    ImageContent,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    Usage,
    UserMessage,
)

_CHARS_PER_TOKEN = 4

# Character-equivalent estimate for one image (about 1200 tokens).
IMAGE_TOKEN_CHARS = 4800


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _content_chars(block: Any) -> int:
    if isinstance(block, TextContent):
        return _byte_len(block.text)
    if isinstance(block, ThinkingContent):
        return _byte_len(block.thinking)
    if isinstance(block, ImageContent):
        return IMAGE_TOKEN_CHARS
    if isinstance(block, ToolCall):
        try:
            encoded = json.dumps(
                block.arguments, separators=(",", ":"), sort_keys=True, ensure_ascii=False
            )
        except (TypeError, ValueError):
            return 0
        return _byte_len(encoded)
    return 0


def estimate_tokens(msg: Optional[Any]) -> int:
    """Approximate the token count of one message at four characters per token."""
    if not isinstance(msg, (UserMessage, AssistantMessage, ToolResultMessage)):
        return 0
    return sum(_content_chars(block) for block in msg.content) // _CHARS_PER_TOKEN


def calculate_context_tokens(usage: Usage) -> int:
    """Total context size from reported usage, preferring the provider's total."""
    if usage.total_tokens > 0:
        return usage.total_tokens
    return usage.input + usage.output + usage.cache_read + usage.cache_write


def estimate_context_tokens(messages: Optional[Sequence[Any]]) -> int:
    """Estimate the context size, anchored on the latest reported usage when there is one."""
    messages = list(messages or [])
    for index in range(len(messages) - 1, -1, -1):
        msg = messages[index]
        if not isinstance(msg, AssistantMessage):
            continue
        base = calculate_context_tokens(msg.usage)
        if base > 0:
            return base + sum(estimate_tokens(m) for m in messages[index + 1:])
    return sum(estimate_tokens(m) for m in messages)