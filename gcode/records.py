"""Session timeline records and the materialisation of a branch into a prompt."""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Union

from .messages import (
    DecodeError,
    Message,
    TextContent,
    ThinkingLevel,
    UserMessage,
    message_from_dict,
)


class EntryType(str, Enum):
    """Discriminator stored with every timeline entry."""

    MESSAGE = "message"
    THINKING_CHANGE = "thinking_level_change"
    MODEL_CHANGE = "model_change"
    COMPACTION = "compaction"
    BRANCH_SUMMARY = "branch_summary"
    CUSTOM = "custom"
    CUSTOM_MESSAGE = "custom_message"
    LABEL = "label"
    SESSION_INFO = "session_info"
    BASH_EXECUTION = "bash_execution"


# ----- decoding helpers -----


def _parse_json(raw: Union[str, bytes, bytearray], what: str) -> Any:
    if not raw:
        raise DecodeError(f"{what}: empty JSON document")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"{what}: {exc}") from exc


def _blob(data: Any, what: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DecodeError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _text(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{what}: field {key!r} must be a string")
    return value


def _integer(data: dict, key: str, what: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{what}: field {key!r} must be an integer")
    return value


def _strings(data: dict, key: str, what: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DecodeError(f"{what}: field {key!r} must be an array of strings")
    return list(value)


def _thinking_level(value: str) -> Union[ThinkingLevel, str]:
    try:
        return ThinkingLevel(value)
    except ValueError:
        return value


# ----- sessions and entries -----


@dataclass
class Session:
    """A single conversation thread."""

    id: str = ""
    version: int = 3
    cwd: str = ""
    parent_session: str = ""
    created_at: int = 0
    name: str = ""


@dataclass
class Entry:
    """A single timeline event in a session; ``data`` holds its JSON blob as text."""

    id: str = ""
    session_id: str = ""
    parent_id: str = ""
    type: Union[EntryType, str] = ""
    timestamp: int = 0
    data: Union[str, bytes] = "null"

    def decode_data(self) -> Any:
        """Parse the JSON blob of this entry."""
        return _parse_json(self.data, f"entry {self.id}")


# ----- data blobs -----


@dataclass
class MessageData:
    """Blob of a message entry: the role and the encoded message."""

    role: str = ""
    message: Any = None

    def to_dict(self) -> dict:
        return {"role": self.role, "message": self.message}

    @classmethod
    def from_dict(cls, data: Any) -> "MessageData":
        what = "messageData"
        data = _blob(data, what)
        return cls(role=_text(data, "role", what), message=data.get("message"))


@dataclass
class ThinkingChangeData:
    """Blob of a thinking-level change entry."""

    thinking_level: str = ""


@dataclass
class ModelChangeData:
    """Blob of a model change entry."""

    provider: str = ""
    model_id: str = ""


@dataclass
class CompactionData:
    """Blob of a compaction entry."""

    summary: str = ""
    first_kept_entry_id: str = ""
    tokens_before: int = 0
    read_files: list = field(default_factory=list)
    modified_files: list = field(default_factory=list)

    def to_dict(self) -> dict:
        out: dict = {
            "summary": self.summary,
            "firstKeptEntryId": self.first_kept_entry_id,
            "tokensBefore": self.tokens_before,
        }
        if self.read_files:
            out["readFiles"] = list(self.read_files)
        if self.modified_files:
            out["modifiedFiles"] = list(self.modified_files)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "CompactionData":
        what = "compaction"
        data = _blob(data, what)
        return cls(
            summary=_text(data, "summary", what),
            first_kept_entry_id=_text(data, "firstKeptEntryId", what),
            tokens_before=_integer(data, "tokensBefore", what),
            read_files=_strings(data, "readFiles", what),
            modified_files=_strings(data, "modifiedFiles", what),
        )


@dataclass
class BranchSummaryData:
    """Blob of a branch summary entry."""

    summary: str = ""
    from_id: str = ""
    read_files: list = field(default_factory=list)
    modified_files: list = field(default_factory=list)

    def to_dict(self) -> dict:
        out: dict = {"summary": self.summary, "fromId": self.from_id}
        if self.read_files:
            out["readFiles"] = list(self.read_files)
        if self.modified_files:
            out["modifiedFiles"] = list(self.modified_files)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "BranchSummaryData":
        what = "branch_summary"
        data = _blob(data, what)
        return cls(
            summary=_text(data, "summary", what),
            from_id=_text(data, "fromId", what),
            read_files=_strings(data, "readFiles", what),
            modified_files=_strings(data, "modifiedFiles", what),
        )


@dataclass
class CustomData:
    """Blob of a custom entry."""

    custom_type: str = ""
    payload: Any = None


@dataclass
class CustomMessageData:
    """Blob of a custom message entry."""

    content: str = ""
    display: str = ""


@dataclass
class LabelData:
    """Blob of a label entry."""

    target_id: str = ""
    label: str = ""


@dataclass
class SessionInfoData:
    """Blob of a session info entry."""

    name: str = ""


# ----- identifiers -----


def new_entry_id() -> str:
    """Return a random 8-character hex identifier."""
    return secrets.token_hex(4)


def new_session_id() -> str:
    """Return a random 8-character hex identifier for a session."""
    return new_entry_id()


# ----- materialised context -----


@dataclass
class SessionModel:
    """Provider and model captured in a model change entry."""

    provider: str = ""
    model_id: str = ""


@dataclass
class SessionContext:
    """The materialised state of a session branch."""

    messages: list = field(default_factory=list)
    thinking_level: Union[ThinkingLevel, str] = ""
    model: Optional[SessionModel] = None


def _apply_settings(context: SessionContext, entry: Entry) -> None:
    what = f"entry {entry.id}"
    try:
        if entry.type == EntryType.THINKING_CHANGE:
            blob = _blob(entry.decode_data(), what)
            context.thinking_level = _thinking_level(_text(blob, "thinkingLevel", what))
        elif entry.type == EntryType.MODEL_CHANGE:
            blob = _blob(entry.decode_data(), what)
            context.model = SessionModel(
                provider=_text(blob, "provider", what),
                model_id=_text(blob, "modelId", what),
            )
    except DecodeError:
        pass


def _find_anchor(entries: list) -> Optional[tuple]:
    """Return (index, summary, target id) of the most recent summary anchor."""
    for index in range(len(entries) - 1, -1, -1):
        entry = entries[index]
        if entry.type == EntryType.COMPACTION:
            try:
                data = CompactionData.from_dict(entry.decode_data())
            except DecodeError as exc:
                raise DecodeError(f"store: decode compaction {entry.id}: {exc}") from exc
            return index, data.summary, data.first_kept_entry_id
        if entry.type == EntryType.BRANCH_SUMMARY:
            try:
                data = BranchSummaryData.from_dict(entry.decode_data())
            except DecodeError as exc:
                raise DecodeError(f"store: decode branch_summary {entry.id}: {exc}") from exc
            return index, data.summary, data.from_id
    return None


def build_context(entries: Iterable[Entry]) -> SessionContext:
    """Walk a root-to-leaf branch and produce the conversation to send to the model.

    The latest thinking level and model win. The most recent compaction or
    branch summary becomes a synthetic user message, and only message
    entries from its target onwards follow it.
    """
    entries = list(entries or [])
    context = SessionContext()
    for entry in entries:
        _apply_settings(context, entry)

    start = 0
    anchor = _find_anchor(entries)
    if anchor is not None:
        anchor_index, summary, target_id = anchor
        start = anchor_index + 1
        if target_id:
            start = next(
                (i for i, entry in enumerate(entries) if entry.id == target_id),
                start,
            )
        context.messages.append(
            UserMessage(
                content=[TextContent(text="Previous conversation summary:\n" + summary)],
                timestamp=entries[anchor_index].timestamp,
            )
        )

    context.messages.extend(
        deserialize_message_entry(entry)
        for entry in entries[start:]
        if entry.type == EntryType.MESSAGE
    )
    return context


def deserialize_message_entry(entry: Entry) -> Message:
    """Decode the message stored in a message entry."""
    try:
        data = MessageData.from_dict(entry.decode_data())
    except DecodeError as exc:
        raise DecodeError(f"store: entry {entry.id}: decode message wrapper: {exc}") from exc
    if data.message is None or data.message == "":
        raise DecodeError(f"store: entry {entry.id}: empty message blob")
    return deserialize_message(data.message)


def deserialize_message(raw: Any) -> Message:
    """Decode a message from JSON text or an already parsed object, by its role."""
    if isinstance(raw, (str, bytes, bytearray)):
        raw = _parse_json(raw, "store: decode role")
    if not isinstance(raw, dict):
        raise DecodeError("store: decode role: expected a JSON object")
    role = raw.get("role")
    if role is not None and not isinstance(role, str):
        raise DecodeError("store: decode role: 'role' must be a string")
    if role not in ("user", "assistant", "toolResult"):
        raise DecodeError(f"store: unknown message role {role or ''!r}")
    return message_from_dict(raw)


def serialize_message_entry(msg: Message) -> MessageData:
    """Wrap a message into the blob stored by a message entry."""
    return MessageData(role=msg.role, message=msg.to_dict())