"""Tracking of the files that read, write and edit tool calls touched."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .messages import AssistantMessage, ToolCall


@dataclass
class FileOperations:
    """Paths touched during a conversation, grouped by the tool that touched them.

    A path may sit in several sets (read, then edited); ``compute_file_lists``
    resolves them into disjoint read-only and modified lists.
    """

    read: set = field(default_factory=set)
    written: set = field(default_factory=set)
    edited: set = field(default_factory=set)

    def merge(self, other: Optional["FileOperations"]) -> None:
        """Fold the paths of ``other`` into this collection; ``None`` is ignored."""
        if other is None:
            return
        self.read |= other.read
        self.written |= other.written
        self.edited |= other.edited

    def compute_file_lists(self) -> tuple:
        """Return sorted ``(read_only, modified)`` lists; modified paths win over reads."""
        modified = self.written | self.edited
        return sorted(self.read - modified), sorted(modified)


def extract_file_ops_from_message(msg: Any) -> FileOperations:
    """Collect the ``path`` argument of read/write/edit calls in an assistant message."""
    ops = FileOperations()
    if not isinstance(msg, AssistantMessage):
        return ops
    for block in msg.content:
        if not isinstance(block, ToolCall):
            continue
        arguments = block.arguments if isinstance(block.arguments, dict) else {}
        path = arguments.get("path")
        if not isinstance(path, str) or not path:
            continue
        if block.name == "read":
            ops.read.add(path)
        elif block.name == "write":
            ops.written.add(path)
        elif block.name == "edit":
            ops.edited.add(path)
    return ops


def extract_file_ops_from_messages(messages: Optional[Iterable[Any]]) -> FileOperations:
    """Accumulate file operations over a message list, skipping non-assistant messages."""
    ops = FileOperations()
    for msg in messages or []:
        ops.merge(extract_file_ops_from_message(msg))
    return ops


def format_file_operations(read_only: Optional[Iterable[str]], modified: Optional[Iterable[str]]) -> str:
    """Render the file lists as XML-like tags; empty when both lists are empty."""
    read_only = list(read_only or [])
    modified = list(modified or [])
    sections = []
    if read_only:
        sections.append("<read-files>\n" + "".join(f"{p}\n" for p in read_only) + "</read-files>\n")
    if modified:
        sections.append(
            "<modified-files>\n" + "".join(f"{p}\n" for p in modified) + "</modified-files>\n"
        )
    return "".join(sections)