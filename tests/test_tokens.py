from gcode.messages import (
    AssistantMessage,
    ImageContent,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    Usage,
    UserMessage,
)
from gcode.tokens import calculate_context_tokens, estimate_context_tokens, estimate_tokens


def test_estimate_tokens_text():
    msg = UserMessage(content=[TextContent(text="hello world")])
    assert estimate_tokens(msg) == 2


def test_estimate_tokens_image():
    msg = UserMessage(content=[ImageContent(data="AAAA")])
    assert estimate_tokens(msg) == 1200


def test_estimate_tokens_tool_call():
    msg = AssistantMessage(content=[ToolCall(id="c1", name="read", arguments={"path": "/tmp/x"})])
    assert 3 <= estimate_tokens(msg) <= 5


def test_estimate_tokens_thinking():
    msg = AssistantMessage(content=[ThinkingContent(thinking="ponder ponder")])
    assert estimate_tokens(msg) == 3


def test_estimate_tokens_mixed_content():
    msg = AssistantMessage(
        content=[
            ThinkingContent(thinking="plan"),
            TextContent(text="answer"),
            ImageContent(data="AAAA"),
        ]
    )
    assert estimate_tokens(msg) == 1202


def test_estimate_tokens_tool_result():
    msg = ToolResultMessage(content=[TextContent(text="file contents")])
    assert estimate_tokens(msg) == 3


def test_estimate_tokens_none():
    assert estimate_tokens(None) == 0


def test_calculate_context_tokens_total():
    assert calculate_context_tokens(Usage(total_tokens=123, input=999)) == 123


def test_calculate_context_tokens_fallback():
    assert calculate_context_tokens(Usage(input=100, output=50, cache_read=20, cache_write=10)) == 180


def test_estimate_context_tokens_with_usage():
    asst = AssistantMessage(
        content=[TextContent(text="ignored")],
        stop_reason=StopReason.STOP,
        usage=Usage(total_tokens=5000),
    )
    trailing = UserMessage(content=[TextContent(text="four chars here!!!!")])
    assert 5004 <= estimate_context_tokens([asst, trailing]) <= 5005


def test_estimate_context_tokens_no_usage():
    msgs = [
        UserMessage(content=[TextContent(text="hello world")]),
        AssistantMessage(content=[TextContent(text="response")]),
    ]
    assert estimate_context_tokens(msgs) == 4


def test_estimate_context_tokens_empty():
    assert estimate_context_tokens([]) == 0
    assert estimate_context_tokens(None) == 0


def test_estimate_context_tokens_walks_back_for_last_usage():
    early = AssistantMessage(content=[TextContent(text="a")], usage=Usage(total_tokens=1000))
    later = AssistantMessage(content=[TextContent(text="b")])
    after = UserMessage(content=[TextContent(text="xxxx")])
    assert estimate_context_tokens([early, later, after]) == 1001