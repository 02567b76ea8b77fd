"""Choosing where a conversation branch can be split for compaction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .messages import DecodeError
from .records import Entry, EntryType, MessageData
from .tokens import estimate_tokens
from .trigger import CompactionSettings

_ALWAYS_VALID = (
    EntryType.CUSTOM_MESSAGE,
    EntryType.BASH_EXECUTION,
    EntryType.BRANCH_SUMMARY,
    EntryType.COMPACTION,
)

_SETTINGS_CHANGES = (EntryType.THINKING_CHANGE, EntryType.MODEL_CHANGE)


def _message_role(entry: Entry) -> Optional[str]:
    try:
        return MessageData.from_dict(entry.decode_data()).role
    except DecodeError:
        return None


def is_valid_cut_point(entry: Entry) -> bool:
    """Whether splitting at ``entry`` keeps tool results and settings changes intact."""
    if entry.type in _ALWAYS_VALID:
        return True
    if entry.type == EntryType.MESSAGE:
        return _message_role(entry) in ("user", "assistant")
    return False


def find_turn_start_index(entries: Sequence[Entry], from_index: int) -> int:
    """Index of the user message or bash execution that began the turn, or -1."""
    from_index = min(from_index, len(entries) - 1)
    for index in range(from_index, -1, -1):
        entry = entries[index]
        if entry.type == EntryType.BASH_EXECUTION:
            return index
        if entry.type == EntryType.MESSAGE and _message_role(entry) == "user":
            return index
    return -1


@dataclass
class CutPointResult:
    """Where to cut: entries before ``cut_index`` are summarised; 0 means no cut."""

    cut_index: int = 0
    turn_start_index: int = -1
    is_split_turn: bool = False


def _message_indices(entries: Sequence[Entry], messages: Sequence[Any]) -> list:
    indices = []
    cursor = 0
    for entry in entries:
        if entry.type == EntryType.MESSAGE and cursor < len(messages):
            indices.append(cursor)
            cursor += 1
        else:
            indices.append(-1)
    return indices


def find_cut_point(
    entries: Sequence[Entry],
    messages: Optional[Sequence[Any]],
    settings: CompactionSettings,
) -> CutPointResult:
    """Find the first entry to keep so that roughly ``keep_recent_tokens`` stay in context.

    ``messages`` holds the decoded messages of the message entries, in order.
    The cut snaps to a valid cut point and pulls preceding settings changes
    into the kept region.
    """
    entries = list(entries or [])
    messages = list(messages or [])
    if not entries:
        return CutPointResult()

    indices = _message_indices(entries, messages)
    accumulated = 0
    target = None
    for index in range(len(entries) - 1, -1, -1):
        if entries[index].type == EntryType.MESSAGE and indices[index] >= 0:
            accumulated += estimate_tokens(messages[indices[index]])
        if accumulated >= settings.keep_recent_tokens:
            target = index
            break
    if target is None:
        return CutPointResult()

    cut = next(
        (i for i in range(target, len(entries)) if is_valid_cut_point(entries[i])),
        None,
    )
    if cut is None:
        cut = next(
            (i for i in range(target - 1, -1, -1) if is_valid_cut_point(entries[i])),
            None,
        )
        if cut is None:
            return CutPointResult()

    while cut > 0 and entries[cut - 1].type in _SETTINGS_CHANGES:
        cut -= 1

    result = CutPointResult(cut_index=cut)
    if cut < len(entries) and entries[cut].type == EntryType.MESSAGE:
        role = _message_role(entries[cut])
        if role is not None and role != "user":
            result.is_split_turn = True
            result.turn_start_index = find_turn_start_index(entries, cut - 1)
    return result