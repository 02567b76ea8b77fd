"""Preparing and running a compaction of an over-long conversation branch."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from .cutpoint import find_cut_point
from .fileops import (
    FileOperations,
    extract_file_ops_from_messages,
    format_file_operations,
)
from .llm import CompactionError, StreamFunc, call_llm
from .messages import DecodeError, Model
from .prompts import (
    SUMMARIZATION_PROMPT,
    SUMMARIZATION_SYSTEM_PROMPT,
    TURN_PREFIX_PROMPT,
    UPDATE_SUMMARIZATION_PROMPT,
)
from .records import CompactionData, Entry, EntryType
from .serialize import serialize_conversation
from .tokens import estimate_context_tokens
from .trigger import CompactionSettings

_TURN_MARKER = "\n\n---\n\n## Current Turn (partial)\n\n"


@dataclass
class CompactionPreparation:
    """Everything a compaction needs, as assembled by ``prepare_compaction``."""

    messages_to_summarize: list = field(default_factory=list)
    turn_prefix_messages: list = field(default_factory=list)
    first_kept_entry_id: str = ""
    tokens_before: int = 0
    file_ops: Optional[FileOperations] = None
    previous_summary: str = ""
    previous_file_ops: Optional[FileOperations] = None
    is_split_turn: bool = False


@dataclass
class CompactionResult:
    """The outcome of a compaction, matching the stored compaction blob."""

    summary: str = ""
    first_kept_entry_id: str = ""
    tokens_before: int = 0
    read_files: list = field(default_factory=list)
    modified_files: list = field(default_factory=list)


def _entry_message_index(entries: Sequence[Entry], messages: Sequence[Any]) -> list:
    indices = []
    cursor = 0
    for entry in entries:
        if entry.type == EntryType.MESSAGE and cursor < len(messages):
            indices.append(cursor)
            cursor += 1
        else:
            indices.append(-1)
    return indices


def _messages_between(messages: Sequence[Any], index: list, start: int, stop: int) -> list:
    start = max(start, 0)
    stop = min(stop, len(index))
    return [messages[index[i]] for i in range(start, stop) if index[i] >= 0]


def _previous_compaction(entries: Sequence[Entry], cut_index: int) -> tuple:
    """Return (entry index, summary, file ops) of the last compaction before the cut."""
    for i in range(cut_index - 1, -1, -1):
        entry = entries[i]
        if entry.type != EntryType.COMPACTION:
            continue
        try:
            data = CompactionData.from_dict(entry.decode_data())
        except DecodeError:
            return -1, "", None
        ops = FileOperations(read=set(data.read_files), edited=set(data.modified_files))
        return i, data.summary, ops
    return -1, "", None


def prepare_compaction(
    entries: Optional[Sequence[Entry]],
    messages: Optional[Sequence[Any]],
    settings: CompactionSettings,
) -> Optional[CompactionPreparation]:
    """Work out what a compaction of this branch would summarise.

    ``messages`` are the decoded messages of the message entries, in order.
    Returns None when there is nothing to compact or the branch already ends
    in a compaction.
    """
    entries = list(entries or [])
    messages = list(messages or [])
    if not entries or entries[-1].type == EntryType.COMPACTION:
        return None

    cut = find_cut_point(entries, messages, settings)
    if cut.cut_index == 0:
        return None

    prev_index, prev_summary, prev_ops = _previous_compaction(entries, cut.cut_index)
    index = _entry_message_index(entries, messages)

    start = prev_index + 1 if prev_index >= 0 else 0
    to_summarize = _messages_between(messages, index, start, cut.cut_index)
    if not to_summarize:
        return None

    turn_prefix: list = []
    if cut.is_split_turn and cut.turn_start_index >= 0:
        turn_prefix = _messages_between(messages, index, cut.turn_start_index, cut.cut_index)
        if turn_prefix:
            to_summarize = to_summarize[: max(len(to_summarize) - len(turn_prefix), 0)]

    file_ops = extract_file_ops_from_messages(to_summarize)
    if cut.is_split_turn:
        file_ops.merge(extract_file_ops_from_messages(turn_prefix))

    return CompactionPreparation(
        messages_to_summarize=to_summarize,
        turn_prefix_messages=turn_prefix,
        first_kept_entry_id=entries[cut.cut_index].id,
        tokens_before=estimate_context_tokens(messages),
        file_ops=file_ops,
        previous_summary=prev_summary,
        previous_file_ops=prev_ops,
        is_split_turn=cut.is_split_turn,
    )


def _generate_summary(
    stream: Optional[StreamFunc],
    model: Model,
    api_key: str,
    messages: list,
    previous_summary: str,
    max_tokens: int,
) -> str:
    if not messages:
        return ""
    conversation = serialize_conversation(messages)
    if previous_summary:
        prompt = (UPDATE_SUMMARIZATION_PROMPT % previous_summary) + "\n\n" + conversation
    else:
        prompt = SUMMARIZATION_PROMPT + "\n\n" + conversation
    return call_llm(stream, model, api_key, SUMMARIZATION_SYSTEM_PROMPT, prompt, max_tokens)


def _generate_turn_prefix_summary(
    stream: Optional[StreamFunc],
    model: Model,
    api_key: str,
    messages: list,
    max_tokens: int,
) -> str:
    if not messages:
        return ""
    prompt = TURN_PREFIX_PROMPT + "\n\n" + serialize_conversation(messages)
    return call_llm(stream, model, api_key, SUMMARIZATION_SYSTEM_PROMPT, prompt, max_tokens)


def compact(
    prep: Optional[CompactionPreparation],
    model: Model,
    api_key: str,
    settings: CompactionSettings,
    stream: Optional[StreamFunc],
) -> CompactionResult:
    """Summarise the prepared messages and attach the touched file lists.

    When the cut splits a turn, the history and the turn prefix are
    summarised concurrently and joined under a "Current Turn" heading.
    """
    if prep is None or not (prep.messages_to_summarize or prep.turn_prefix_messages):
        raise CompactionError("compaction: empty preparation")

    max_summary_tokens = int(settings.reserve_tokens * 0.8)
    if max_summary_tokens <= 0:
        max_summary_tokens = 8192

    prefix_summary = ""
    if prep.is_split_turn and prep.turn_prefix_messages:
        prefix_max = int(settings.reserve_tokens * 0.5)
        if prefix_max <= 0:
            prefix_max = 4096
        with ThreadPoolExecutor(max_workers=2) as pool:
            history_future = pool.submit(
                _generate_summary, stream, model, api_key,
                prep.messages_to_summarize, prep.previous_summary, max_summary_tokens,
            )
            prefix_future = pool.submit(
                _generate_turn_prefix_summary, stream, model, api_key,
                prep.turn_prefix_messages, prefix_max,
            )
            history_summary = history_future.result()
            prefix_summary = prefix_future.result()
    else:
        history_summary = _generate_summary(
            stream, model, api_key,
            prep.messages_to_summarize, prep.previous_summary, max_summary_tokens,
        )

    final = history_summary
    if prefix_summary:
        final = history_summary + _TURN_MARKER + prefix_summary

    merged = FileOperations()
    merged.merge(prep.file_ops)
    merged.merge(prep.previous_file_ops)
    read_only, modified = merged.compute_file_lists()
    ops_text = format_file_operations(read_only, modified)
    if ops_text:
        final += "\n\n" + ops_text

    return CompactionResult(
        summary=final,
        first_kept_entry_id=prep.first_kept_entry_id,
        tokens_before=prep.tokens_before,
        read_files=read_only,
        modified_files=modified,
    )