"""Summarising an abandoned conversation branch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .fileops import FileOperations, extract_file_ops_from_messages, format_file_operations
from .llm import CompactionError, StreamFunc, call_llm
from .messages import DecodeError, Model
from .prompts import BRANCH_SUMMARY_PREAMBLE, BRANCH_SUMMARY_PROMPT, SUMMARIZATION_SYSTEM_PROMPT
from .records import EntryType, deserialize_message_entry
from .serialize import serialize_conversation
from .tokens import estimate_tokens
from .trigger import DEFAULT_COMPACTION_SETTINGS, CompactionSettings


@dataclass
class BranchSummaryPreparation:
    """Messages of an abandoned branch, oldest first, with the files they touched."""

    messages: list = field(default_factory=list)
    file_ops: Optional[FileOperations] = None
    from_id: str = ""


@dataclass
class BranchSummaryResult:
    """The summary of an abandoned branch and its file lists."""

    summary: str = ""
    read_files: list = field(default_factory=list)
    modified_files: list = field(default_factory=list)


def _decode(entry: Any) -> Optional[Any]:
    try:
        return deserialize_message_entry(entry)
    except DecodeError:
        return None


def prepare_branch_summary(
    db: Any,
    old_leaf_id: str,
    target_id: str,
    settings: CompactionSettings,
) -> Optional[BranchSummaryPreparation]:
    """Collect the messages of the branch ending at ``old_leaf_id`` that ``target_id`` does not share.

    ``db`` needs a ``get_branch_entries(from_id, to_id)`` method. Walking from
    the newest entry, collection stops once ``keep_recent_tokens`` is reached.
    Returns None when the branches do not diverge.
    """
    if db is None:
        raise CompactionError("compaction: branch db is nil")
    entries = list(db.get_branch_entries(old_leaf_id, target_id) or [])
    if not entries:
        return None

    budget = settings.keep_recent_tokens
    if budget <= 0:
        budget = DEFAULT_COMPACTION_SETTINGS.keep_recent_tokens

    start = 0
    accumulated = 0
    for index in range(len(entries) - 1, -1, -1):
        start = index
        entry = entries[index]
        if entry.type != EntryType.MESSAGE:
            continue
        msg = _decode(entry)
        if msg is None:
            continue
        accumulated += estimate_tokens(msg)
        if accumulated >= budget:
            break

    messages = [
        msg
        for msg in (_decode(e) for e in entries[start:] if e.type == EntryType.MESSAGE)
        if msg is not None
    ]
    return BranchSummaryPreparation(
        messages=messages,
        file_ops=extract_file_ops_from_messages(messages),
        from_id=old_leaf_id,
    )


def summarize_branch(
    prep: Optional[BranchSummaryPreparation],
    model: Model,
    api_key: str,
    settings: CompactionSettings,
    stream: Optional[StreamFunc],
) -> BranchSummaryResult:
    """Ask the model to summarise the branch and prepend the branch preamble."""
    if prep is None or not prep.messages:
        raise CompactionError("compaction: empty branch preparation")

    prompt = BRANCH_SUMMARY_PROMPT + "\n\n" + serialize_conversation(prep.messages)
    max_tokens = int(settings.reserve_tokens * 0.8)
    if max_tokens <= 0:
        max_tokens = 8192
    body = call_llm(stream, model, api_key, SUMMARIZATION_SYSTEM_PROMPT, prompt, max_tokens)

    summary = BRANCH_SUMMARY_PREAMBLE + "\n\n" + body
    ops = prep.file_ops if prep.file_ops is not None else FileOperations()
    read_only, modified = ops.compute_file_lists()
    ops_text = format_file_operations(read_only, modified)
    if ops_text:
        summary += "\n\n" + ops_text
    return BranchSummaryResult(summary=summary, read_files=read_only, modified_files=modified)