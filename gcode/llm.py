"""A single-turn summarisation request against a streaming model function."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, Optional

from .messages import (
    AssistantMessage,
    AssistantMessageEvent,
    Context,
    EventType,
    Model,
    StopReason,
    StreamOptions,
    TextContent,
    UserMessage,
)

# A stream function takes the model, the prompt context and the request
# options and yields the events of one response.
StreamFunc = Callable[[Model, Context, StreamOptions], Iterable[AssistantMessageEvent]]


class CompactionError(Exception):
    """Raised when a summarisation or compaction step fails."""


def call_llm(
    stream: Optional[StreamFunc],
    model: Model,
    api_key: str,
    system_prompt: str,
    user_message: str,
    max_tokens: int,
) -> str:
    """Send one user message and return the text of the reply.

    Text deltas are concatenated; when the stream sends none, the text blocks
    of the final message are used instead. An error in the final message
    raises CompactionError.
    """
    if stream is None:
        api = model.api.value if isinstance(model.api, Enum) else model.api
        raise CompactionError(f"compaction: no provider for api {api!r}")

    options = StreamOptions(api_key=api_key, max_tokens=max_tokens)
    context = Context(
        system_prompt=system_prompt,
        messages=[UserMessage(content=[TextContent(text=user_message)])],
    )

    chunks = []
    final: Optional[AssistantMessage] = None
    for event in stream(model, context, options):
        if event.type == EventType.TEXT_DELTA:
            chunks.append(event.delta)
        elif event.type == EventType.DONE and event.message is not None:
            final = event.message
        elif event.type == EventType.ERROR:
            final = event.error or AssistantMessage(stop_reason=StopReason.ERROR)
    if final is None:
        final = AssistantMessage()

    if final.stop_reason == StopReason.ERROR or final.error_message:
        raise CompactionError(f"compaction: llm error: {final.error_message}")

    text = "".join(chunks)
    if not text:
        text = "".join(b.text for b in final.content if isinstance(b, TextContent))
    return text