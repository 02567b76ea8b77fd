"""Conversation content blocks, messages, models and their JSON wire form."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union


class DecodeError(ValueError):
    """Raised when a JSON document cannot be decoded into a content block or message."""


class Api(str, Enum):
    """Wire-level LLM API protocol."""

    OPENAI_COMPLETIONS = "openai-completions"
    ANTHROPIC_MESSAGES = "anthropic-messages"
    GOOGLE_GEMINI = "google-gemini"


class Provider(str, Enum):
    """LLM vendor or aggregator."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    XAI = "xai"
    GROQ = "groq"
    CEREBRAS = "cerebras"
    OPENROUTER = "openrouter"
    GOOGLE = "google"


class StopReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "toolUse"
    ERROR = "error"
    ABORTED = "aborted"


class ThinkingLevel(str, Enum):
    """Coarse reasoning effort dial."""

    OFF = "off"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class CacheRetention(str, Enum):
    """Prompt-cache TTL tier."""

    NONE = "none"
    SHORT = "short"
    LONG = "long"


class EventType(str, Enum):
    """Kind tag on a streaming event."""

    START = "start"
    TEXT_START = "text_start"
    TEXT_DELTA = "text_delta"
    TEXT_END = "text_end"
    THINKING_START = "thinking_start"
    THINKING_DELTA = "thinking_delta"
    THINKING_END = "thinking_end"
    TOOLCALL_START = "toolcall_start"
    TOOLCALL_DELTA = "toolcall_delta"
    TOOLCALL_END = "toolcall_end"
    DONE = "done"
    ERROR = "error"


# ----- decoding helpers -----

_MISSING = object()


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _require_object(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise DecodeError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _str(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{what}: field {key!r} must be a string")
    return value


def _int(data: dict, key: str, what: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{what}: field {key!r} must be an integer")
    return value


def _float(data: dict, key: str, what: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{what}: field {key!r} must be a number")
    return float(value)


def _bool(data: dict, key: str, what: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise DecodeError(f"{what}: field {key!r} must be a boolean")
    return value


def _object(data: dict, key: str, what: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"{what}: field {key!r} must be an object")
    return value


def _list(data: dict, key: str, what: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"{what}: field {key!r} must be an array")
    return value


# ----- content blocks -----


@dataclass
class TextContent:
    """A plain text block."""

    text: str = ""
    text_signature: str = ""

    content_type: ClassVar[str] = "text"

    def to_dict(self) -> dict:
        out: dict = {"type": "text", "text": self.text}
        if self.text_signature:
            out["textSignature"] = self.text_signature
        return out


@dataclass
class ThinkingContent:
    """A chain-of-thought block returned by reasoning models."""

    thinking: str = ""
    thinking_signature: str = ""
    redacted: bool = False

    content_type: ClassVar[str] = "thinking"

    def to_dict(self) -> dict:
        out: dict = {"type": "thinking", "thinking": self.thinking}
        if self.thinking_signature:
            out["thinkingSignature"] = self.thinking_signature
        if self.redacted:
            out["redacted"] = True
        return out


@dataclass
class ImageContent:
    """A base64-encoded image block."""

    data: str = ""
    mime_type: str = ""

    content_type: ClassVar[str] = "image"

    def to_dict(self) -> dict:
        return {"type": "image", "data": self.data, "mimeType": self.mime_type}


@dataclass
class ToolCall:
    """A request from the assistant to invoke a tool."""

    id: str = ""
    name: str = ""
    arguments: dict = field(default_factory=dict)
    thought_signature: str = ""

    content_type: ClassVar[str] = "toolCall"

    def to_dict(self) -> dict:
        out: dict = {
            "type": "toolCall",
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }
        if self.thought_signature:
            out["thoughtSignature"] = self.thought_signature
        return out


Content = Union[TextContent, ThinkingContent, ImageContent, ToolCall]


def content_from_dict(data: Any) -> Content:
    """Decode one content block, choosing its class from the "type" field."""
    what = "content"
    data = _require_object(data, what)
    kind = data.get("type")
    if kind is not None and not isinstance(kind, str):
        raise DecodeError(f"{what}: decode discriminator: 'type' must be a string")
    if not kind:
        raise DecodeError(f"{what}: missing type field")
    if kind == "text":
        return TextContent(
            text=_str(data, "text", what),
            text_signature=_str(data, "textSignature", what),
        )
    if kind == "thinking":
        return ThinkingContent(
            thinking=_str(data, "thinking", what),
            thinking_signature=_str(data, "thinkingSignature", what),
            redacted=_bool(data, "redacted", what),
        )
    if kind == "image":
        return ImageContent(
            data=_str(data, "data", what),
            mime_type=_str(data, "mimeType", what),
        )
    if kind == "toolCall":
        return ToolCall(
            id=_str(data, "id", what),
            name=_str(data, "name", what),
            arguments=_object(data, "arguments", what),
            thought_signature=_str(data, "thoughtSignature", what),
        )
    raise DecodeError(f"{what}: unknown type {kind!r}")


def _content_list(data: dict, what: str) -> list:
    blocks = []
    for index, raw in enumerate(_list(data, "content", what)):
        try:
            blocks.append(content_from_dict(raw))
        except DecodeError as exc:
            raise DecodeError(f"{what}: content[{index}]: {exc}") from exc
    return blocks


# ----- usage -----


@dataclass
class Cost:
    """Monetary cost of a single response, in USD."""

    input: float = 0.0
    output: float = 0.0
    cache_read: float = 0.0
    cache_write: float = 0.0
    total: float = 0.0

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "output": self.output,
            "cacheRead": self.cache_read,
            "cacheWrite": self.cache_write,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Cost":
        if data is None:
            return cls()
        what = "cost"
        data = _require_object(data, what)
        return cls(
            input=_float(data, "input", what),
            output=_float(data, "output", what),
            cache_read=_float(data, "cacheRead", what),
            cache_write=_float(data, "cacheWrite", what),
            total=_float(data, "total", what),
        )


@dataclass
class Usage:
    """Token consumption and derived cost for an assistant response."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0
    total_tokens: int = 0
    cost: Cost = field(default_factory=Cost)

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "output": self.output,
            "cacheRead": self.cache_read,
            "cacheWrite": self.cache_write,
            "totalTokens": self.total_tokens,
            "cost": self.cost.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Usage":
        if data is None:
            return cls()
        what = "usage"
        data = _require_object(data, what)
        return cls(
            input=_int(data, "input", what),
            output=_int(data, "output", what),
            cache_read=_int(data, "cacheRead", what),
            cache_write=_int(data, "cacheWrite", what),
            total_tokens=_int(data, "totalTokens", what),
            cost=Cost.from_dict(data.get("cost")),
        )


# ----- messages -----


@dataclass
class UserMessage:
    """Input from the human or tool-wielding caller."""

    content: list = field(default_factory=list)
    timestamp: int = 0

    role: ClassVar[str] = "user"

    def to_dict(self) -> dict:
        return {
            "role": "user",
            "content": [c.to_dict() for c in self.content],
            "timestamp": self.timestamp,
        }


@dataclass
class AssistantMessage:
    """A completed model response."""

    content: list = field(default_factory=list)
    api: Union[Api, str] = ""
    provider: Union[Provider, str] = ""
    model: str = ""
    response_id: str = ""
    usage: Usage = field(default_factory=Usage)
    stop_reason: Union[StopReason, str] = ""
    error_message: str = ""
    timestamp: int = 0

    role: ClassVar[str] = "assistant"

    def to_dict(self) -> dict:
        out: dict = {
            "role": "assistant",
            "content": [c.to_dict() for c in self.content],
            "api": _plain(self.api),
            "provider": _plain(self.provider),
            "model": self.model,
        }
        if self.response_id:
            out["responseId"] = self.response_id
        out["usage"] = self.usage.to_dict()
        out["stopReason"] = _plain(self.stop_reason)
        if self.error_message:
            out["errorMessage"] = self.error_message
        out["timestamp"] = self.timestamp
        return out


@dataclass
class ToolResultMessage:
    """The result of executing a tool, returned to the model."""

    tool_call_id: str = ""
    tool_name: str = ""
    content: list = field(default_factory=list)
    details: Any = None
    is_error: bool = False
    timestamp: int = 0

    role: ClassVar[str] = "toolResult"

    def to_dict(self) -> dict:
        out: dict = {
            "role": "toolResult",
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "content": [c.to_dict() for c in self.content],
        }
        if self.details is not None:
            out["details"] = self.details
        out["isError"] = self.is_error
        out["timestamp"] = self.timestamp
        return out


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]


def _user_from_dict(data: dict) -> UserMessage:
    what = "userMessage"
    return UserMessage(
        content=_content_list(data, what),
        timestamp=_int(data, "timestamp", what),
    )


def _assistant_from_dict(data: dict) -> AssistantMessage:
    what = "assistantMessage"
    content = _content_list(data, what)
    try:
        usage = Usage.from_dict(data.get("usage"))
    except DecodeError as exc:
        raise DecodeError(f"{what}: {exc}") from exc
    return AssistantMessage(
        content=content,
        api=_coerce(Api, _str(data, "api", what)),
        provider=_coerce(Provider, _str(data, "provider", what)),
        model=_str(data, "model", what),
        response_id=_str(data, "responseId", what),
        usage=usage,
        stop_reason=_coerce(StopReason, _str(data, "stopReason", what)),
        error_message=_str(data, "errorMessage", what),
        timestamp=_int(data, "timestamp", what),
    )


def _tool_result_from_dict(data: dict) -> ToolResultMessage:
    what = "toolResultMessage"
    return ToolResultMessage(
        tool_call_id=_str(data, "toolCallId", what),
        tool_name=_str(data, "toolName", what),
        content=_content_list(data, what),
        details=data.get("details"),
        is_error=_bool(data, "isError", what),
        timestamp=_int(data, "timestamp", what),
    )


_MESSAGE_DECODERS = {
    "user": _user_from_dict,
    "assistant": _assistant_from_dict,
    "toolResult": _tool_result_from_dict,
}


def message_from_dict(data: Any) -> Message:
    """Decode one message, choosing its class from the "role" field."""
    data = _require_object(data, "message")
    role = data.get("role")
    if role is not None and not isinstance(role, str):
        raise DecodeError("message: decode discriminator: 'role' must be a string")
    if not role:
        raise DecodeError("message: missing role field")
    decoder = _MESSAGE_DECODERS.get(role)
    if decoder is None:
        raise DecodeError(f"message: unknown role {role!r}")
    return decoder(data)


# ----- tools and prompt context -----


@dataclass
class Tool:
    """A callable tool exposed to the model."""

    name: str = ""
    description: str = ""
    parameters: Any = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Tool":
        what = "tool"
        data = _require_object(data, what)
        return cls(
            name=_str(data, "name", what),
            description=_str(data, "description", what),
            parameters=data.get("parameters"),
        )


@dataclass
class Context:
    """A full prompt: system instruction, conversation and available tools."""

    system_prompt: str = ""
    messages: list = field(default_factory=list)
    tools: list = field(default_factory=list)

    def to_dict(self) -> dict:
        out: dict = {}
        if self.system_prompt:
            out["systemPrompt"] = self.system_prompt
        out["messages"] = [m.to_dict() for m in self.messages]
        if self.tools:
            out["tools"] = [t.to_dict() for t in self.tools]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "Context":
        what = "context"
        data = _require_object(data, what)
        messages = []
        for index, raw in enumerate(_list(data, "messages", what)):
            try:
                messages.append(message_from_dict(raw))
            except DecodeError as exc:
                raise DecodeError(f"{what}: messages[{index}]: {exc}") from exc
        tools = [Tool.from_dict(raw) for raw in _list(data, "tools", what)]
        return cls(
            system_prompt=_str(data, "systemPrompt", what),
            messages=messages,
            tools=tools,
        )


# ----- models -----


@dataclass
class ModelCost:
    """Per-million-token pricing for a model, in USD."""

    input: float = 0.0
    output: float = 0.0
    cache_read: float = 0.0
    cache_write: float = 0.0

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "output": self.output,
            "cacheRead": self.cache_read,
            "cacheWrite": self.cache_write,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ModelCost":
        if data is None:
            return cls()
        what = "modelCost"
        data = _require_object(data, what)
        return cls(
            input=_float(data, "input", what),
            output=_float(data, "output", what),
            cache_read=_float(data, "cacheRead", what),
            cache_write=_float(data, "cacheWrite", what),
        )


@dataclass
class OpenAICompat:
    """Per-model quirks of OpenAI-compatible providers."""

    supports_developer_role: bool = False
    supports_reasoning_effort: bool = False
    reasoning_effort_map: dict = field(default_factory=dict)
    supports_usage_in_streaming: bool = False
    max_tokens_field: str = ""
    requires_tool_result_name: bool = False
    requires_thinking_as_text: bool = False
    thinking_format: str = ""
    supports_strict_mode: bool = False

    _FLAGS: ClassVar[tuple] = (
        ("supports_developer_role", "supportsDeveloperRole"),
        ("supports_reasoning_effort", "supportsReasoningEffort"),
        ("supports_usage_in_streaming", "supportsUsageInStreaming"),
        ("requires_tool_result_name", "requiresToolResultName"),
        ("requires_thinking_as_text", "requiresThinkingAsText"),
        ("supports_strict_mode", "supportsStrictMode"),
    )
    _TEXTS: ClassVar[tuple] = (
        ("max_tokens_field", "maxTokensField"),
        ("thinking_format", "thinkingFormat"),
    )

    def to_dict(self) -> dict:
        out: dict = {}
        for attr, key in self._FLAGS + self._TEXTS:
            value = getattr(self, attr)
            if value:
                out[key] = value
        if self.reasoning_effort_map:
            out["reasoningEffortMap"] = {
                _plain(level): effort for level, effort in self.reasoning_effort_map.items()
            }
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "OpenAICompat":
        what = "compat"
        data = _require_object(data, what)
        values: dict = {attr: _bool(data, key, what) for attr, key in cls._FLAGS}
        values.update({attr: _str(data, key, what) for attr, key in cls._TEXTS})
        values["reasoning_effort_map"] = {
            _coerce(ThinkingLevel, level): effort
            for level, effort in _object(data, "reasoningEffortMap", what).items()
        }
        return cls(**values)


@dataclass
class Model:
    """An LLM configuration."""

    id: str = ""
    name: str = ""
    api: Union[Api, str] = ""
    provider: Union[Provider, str] = ""
    base_url: str = ""
    reasoning: bool = False
    input: list = field(default_factory=list)
    cost: ModelCost = field(default_factory=ModelCost)
    context_window: int = 0
    max_tokens: int = 0
    headers: dict = field(default_factory=dict)
    compat: Optional[OpenAICompat] = None

    def to_dict(self) -> dict:
        out: dict = {
            "id": self.id,
            "name": self.name,
            "api": _plain(self.api),
            "provider": _plain(self.provider),
            "baseUrl": self.base_url,
            "reasoning": self.reasoning,
            "input": list(self.input),
            "cost": self.cost.to_dict(),
            "contextWindow": self.context_window,
            "maxTokens": self.max_tokens,
        }
        if self.headers:
            out["headers"] = dict(self.headers)
        if self.compat is not None:
            out["compat"] = self.compat.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "Model":
        what = "model"
        data = _require_object(data, what)
        compat = data.get("compat")
        return cls(
            id=_str(data, "id", what),
            name=_str(data, "name", what),
            api=_coerce(Api, _str(data, "api", what)),
            provider=_coerce(Provider, _str(data, "provider", what)),
            base_url=_str(data, "baseUrl", what),
            reasoning=_bool(data, "reasoning", what),
            input=list(_list(data, "input", what)),
            cost=ModelCost.from_dict(data.get("cost")),
            context_window=_int(data, "contextWindow", what),
            max_tokens=_int(data, "maxTokens", what),
            headers=dict(_object(data, "headers", what)),
            compat=None if compat is None else OpenAICompat.from_dict(compat),
        )


# ----- request options and stream events -----


@dataclass
class ThinkingBudgets:
    """Explicit token budget for each thinking level."""

    minimal: int = 0
    low: int = 0
    medium: int = 0
    high: int = 0


@dataclass
class StreamOptions:
    """Per-request knobs shared by all providers; ``signal`` carries cancellation."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    signal: Any = None
    api_key: str = ""
    cache_retention: str = ""
    headers: dict = field(default_factory=dict)


@dataclass
class SimpleStreamOptions(StreamOptions):
    """Stream options with reasoning controls."""

    reasoning: Union[ThinkingLevel, str] = ""
    thinking_budgets: Optional[ThinkingBudgets] = None


@dataclass
class AssistantMessageEvent:
    """A single element of a streaming response; fields populated according to ``type``."""

    type: EventType
    content_index: int = 0
    delta: str = ""
    content: str = ""
    tool_call: Optional[ToolCall] = None
    reason: Union[StopReason, str] = ""
    partial: Optional[AssistantMessage] = None
    message: Optional[AssistantMessage] = None
    error: Optional[AssistantMessage] = None


# ----- text entry points -----


def _parse(text: Union[str, bytes], what: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"{what}: {exc}") from exc


def loads_content(text: Union[str, bytes]) -> Content:
    """Decode a content block from JSON text."""
    return content_from_dict(_parse(text, "content"))


def loads_message(text: Union[str, bytes]) -> Message:
    """Decode a message from JSON text."""
    return message_from_dict(_parse(text, "message"))


def _jsonable(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (list, tuple)):
        return [_jsonable(item) for item in obj]
    return _plain(obj)


def dumps(obj: Any) -> str:
    """Encode a block, message, model or list of them as compact JSON text."""
    return json.dumps(_jsonable(obj), separators=(",", ":"), ensure_ascii=False)