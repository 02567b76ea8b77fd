"""Compaction settings and the conditions that trigger a compaction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .messages import Usage


@dataclass(frozen=True)
class CompactionSettings:
    """When compaction fires and how much head-room it leaves."""

    enabled: bool = False
    reserve_tokens: int = 0
    keep_recent_tokens: int = 0


DEFAULT_COMPACTION_SETTINGS = CompactionSettings(
    enabled=True,
    reserve_tokens=16384,
    keep_recent_tokens=20000,
)


class CompactionReason(str, Enum):
    """Why a compaction happened."""

    THRESHOLD = "threshold"
    OVERFLOW = "overflow"


@dataclass
class CompactionEvent:
    """Notification about compaction progress."""

    type: str
    reason: Union[CompactionReason, str] = ""


def should_compact(context_tokens: int, context_window: int, settings: CompactionSettings) -> bool:
    """True when the context exceeds the window minus the reserve."""
    if not settings.enabled or context_window <= 0:
        return False
    threshold = context_window - settings.reserve_tokens
    if threshold <= 0:
        return False
    return context_tokens > threshold


_OVERFLOW_PATTERNS = [
    re.compile(p)
    for p in (
        r"prompt is too long",
        r"maximum context length",
        r"maximum number of tokens",
        r"exceeds the maximum",
        r"too many tokens",
        r"context_length_exceeded",
        r"content_too_large",
        r"this model's maximum context length",
        r"resource_exhausted",
        r"token limit",
        r"context window",
        r"input too long",
        r"request too large",
    )
]

_NON_OVERFLOW_PATTERNS = [
    re.compile(p)
    for p in (
        r"rate limit",
        r"rate_limit",
        r"throttl",
        r"too many requests",
        r"\b429\b",
        r"quota",
        r"billing",
    )
]


def is_context_overflow(err_msg: str, usage: Optional[Usage], context_window: int) -> bool:
    """Whether an error or the reported usage shows the context window was exceeded."""
    if usage is not None and context_window > 0 and usage.input > context_window:
        return True
    if not err_msg:
        return False
    lower = err_msg.lower()
    if any(p.search(lower) for p in _NON_OVERFLOW_PATTERNS):
        return False
    return any(p.search(lower) for p in _OVERFLOW_PATTERNS)