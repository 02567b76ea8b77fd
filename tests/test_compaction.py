import json

import pytest

from gcode.compaction import CompactionPreparation, compact, prepare_compaction
from gcode.fileops import FileOperations
from gcode.llm import CompactionError
from gcode.messages import (
    AssistantMessage,
    AssistantMessageEvent,
    EventType,
    Model,
    StopReason,
    TextContent,
    UserMessage,
)
from gcode.prompts import TURN_PREFIX_PROMPT
from gcode.records import CompactionData, Entry, EntryType, serialize_message_entry
from gcode.trigger import CompactionSettings

IDS = ["e1", "e2", "e3", "e4", "e5", "e6", "e7", "e8"]


def faux_stream(text, calls=None):
    def stream(model, context, options):
        if calls is not None:
            calls.append((context, options))
        yield AssistantMessageEvent(type=EventType.TEXT_DELTA, delta=text)
        yield AssistantMessageEvent(
            type=EventType.DONE,
            message=AssistantMessage(content=[TextContent(text=text)]),
        )

    return stream


def labelling_stream(calls):
    def stream(model, context, options):
        calls.append(options.max_tokens)
        text = "PREFIX" if user_prompt(context).startswith(TURN_PREFIX_PROMPT) else "HISTORY"
        yield AssistantMessageEvent(type=EventType.TEXT_DELTA, delta=text)

    return stream


def error_stream(model, context, options):
    yield AssistantMessageEvent(
        type=EventType.ERROR,
        error=AssistantMessage(stop_reason=StopReason.ERROR, error_message="boom"),
    )


def model():
    return Model(id="faux-m")


def user(text):
    return UserMessage(content=[TextContent(text=text)])


def assistant(text):
    return AssistantMessage(content=[TextContent(text=text)])


def message_entry(entry_id, msg, ts=0):
    data = json.dumps(serialize_message_entry(msg).to_dict())
    return Entry(id=entry_id, type=EntryType.MESSAGE, timestamp=ts, data=data)


def entries_from_messages(msgs):
    return [message_entry(IDS[i % 8], m, i + 1) for i, m in enumerate(msgs)]


def user_prompt(context):
    return context.messages[0].content[0].text


# ----- prepare_compaction -----


def test_prepare_skips_when_last_entry_is_compaction():
    entries = [Entry(id="e1", type=EntryType.COMPACTION, data="{}")]
    assert prepare_compaction(entries, [], CompactionSettings(keep_recent_tokens=100)) is None


def test_prepare_skips_empty():
    assert prepare_compaction([], [], CompactionSettings(keep_recent_tokens=100)) is None


def test_prepare_skips_when_everything_fits():
    msgs = [user("hi"), assistant("hello")]
    entries = entries_from_messages(msgs)
    assert prepare_compaction(entries, msgs, CompactionSettings(keep_recent_tokens=1000)) is None


def test_prepare_identifies_messages():
    msgs = []
    for _ in range(5):
        msgs.append(user("x" * 200))
        msgs.append(assistant("y" * 200))
    entries = entries_from_messages(msgs)

    prep = prepare_compaction(entries, msgs, CompactionSettings(keep_recent_tokens=150))
    assert prep is not None
    assert prep.first_kept_entry_id == "e8"
    assert prep.is_split_turn is True
    assert len(prep.turn_prefix_messages) == 1
    assert prep.turn_prefix_messages[0] is msgs[6]
    assert len(prep.messages_to_summarize) == 6
    assert prep.messages_to_summarize == msgs[:6]
    assert prep.tokens_before == 500


def test_prepare_iterative_uses_previous_compaction():
    msgs = [
        user("a" * 200), assistant("b" * 200),
        user("c" * 200), assistant("d" * 200),
        user("e" * 200), assistant("f" * 200),
    ]
    compaction = Entry(
        id="c0",
        type=EntryType.COMPACTION,
        data=json.dumps(
            CompactionData(summary="prev", first_kept_entry_id="x", read_files=["/r.go"]).to_dict()
        ),
    )
    entries = [
        message_entry("m0", msgs[0]), message_entry("m1", msgs[1]),
        compaction,
        message_entry("m2", msgs[2]), message_entry("m3", msgs[3]),
        message_entry("m4", msgs[4]), message_entry("m5", msgs[5]),
    ]
    prep = prepare_compaction(entries, msgs, CompactionSettings(keep_recent_tokens=100))
    assert prep is not None
    assert prep.first_kept_entry_id == "m4"
    assert prep.is_split_turn is False
    assert prep.messages_to_summarize == [msgs[2], msgs[3]]
    assert prep.previous_summary == "prev"
    assert prep.previous_file_ops.read == {"/r.go"}


# ----- compact -----


def test_compact_produces_summary():
    prep = CompactionPreparation(
        messages_to_summarize=[user("do X"), assistant("did X")],
        first_kept_entry_id="e42",
        file_ops=FileOperations(),
        tokens_before=1234,
    )
    result = compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("MOCK SUMMARY"))
    assert result.summary == "MOCK SUMMARY"
    assert result.first_kept_entry_id == "e42"
    assert result.tokens_before == 1234
    assert result.read_files == []
    assert result.modified_files == []


def test_compact_appends_file_ops_as_xml():
    ops = FileOperations()
    ops.read.add("/read-only.go")
    ops.edited.add("/modified.go")
    prep = CompactionPreparation(
        messages_to_summarize=[user("do")], first_kept_entry_id="e1", file_ops=ops
    )
    result = compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("summary"))
    assert "<read-files>" in result.summary
    assert "<modified-files>" in result.summary
    assert result.read_files == ["/read-only.go"]
    assert result.modified_files == ["/modified.go"]


def test_compact_merges_previous_file_ops():
    prev = FileOperations()
    prev.read.add("/old.go")
    prep = CompactionPreparation(
        messages_to_summarize=[user("new")],
        first_kept_entry_id="e1",
        file_ops=FileOperations(),
        previous_file_ops=prev,
    )
    result = compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("summary"))
    assert "/old.go" in result.summary
    assert result.read_files == ["/old.go"]


def test_compact_empty_preparation_errors():
    with pytest.raises(CompactionError):
        compact(CompactionPreparation(), model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("x"))


def test_compact_none_preparation_errors():
    with pytest.raises(CompactionError):
        compact(None, model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("x"))


def test_compact_split_turn_generates_both_summaries():
    prep = CompactionPreparation(
        messages_to_summarize=[user("history")],
        turn_prefix_messages=[user("current turn start"), assistant("partial response")],
        first_kept_entry_id="e1",
        file_ops=FileOperations(),
        is_split_turn=True,
    )
    result = compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), faux_stream("SUMMARY-TEXT"))
    assert "Current Turn (partial)" in result.summary
    assert result.summary.count("SUMMARY-TEXT") >= 2


def test_compact_split_turn_orders_history_then_prefix():
    calls = []
    prep = CompactionPreparation(
        messages_to_summarize=[user("history")],
        turn_prefix_messages=[user("turn")],
        file_ops=FileOperations(),
        is_split_turn=True,
    )
    result = compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), labelling_stream(calls))
    assert result.summary == "HISTORY\n\n---\n\n## Current Turn (partial)\n\nPREFIX"
    assert sorted(calls) == [500, 800]


def test_compact_uses_update_prompt_with_previous_summary():
    calls = []
    prep = CompactionPreparation(
        messages_to_summarize=[user("new work")],
        previous_summary="EARLIER SUMMARY",
        file_ops=FileOperations(),
    )
    compact(prep, model(), "", CompactionSettings(reserve_tokens=0), faux_stream("s", calls))
    assert len(calls) == 1
    context, options = calls[0]
    prompt = user_prompt(context)
    assert "Previous summary:\nEARLIER SUMMARY" in prompt
    assert prompt.endswith("[User]: new work\n\n")
    assert options.max_tokens == 8192


def test_compact_propagates_llm_error():
    prep = CompactionPreparation(messages_to_summarize=[user("x")], file_ops=FileOperations())
    with pytest.raises(CompactionError, match="boom"):
        compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), error_stream)


def test_compact_without_stream_errors():
    prep = CompactionPreparation(messages_to_summarize=[user("x")], file_ops=FileOperations())
    with pytest.raises(CompactionError):
        compact(prep, model(), "", CompactionSettings(reserve_tokens=1000), None)