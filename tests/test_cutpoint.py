import json

from gcode.cutpoint import (
    CutPointResult,
    find_cut_point,
    find_turn_start_index,
    is_valid_cut_point,
)
from gcode.messages import AssistantMessage, TextContent, ToolResultMessage, UserMessage
from gcode.records import (
    Entry,
    EntryType,
    deserialize_message_entry,
    serialize_message_entry,
)
from gcode.trigger import CompactionSettings

_CLASSES = {
    "user": UserMessage,
    "assistant": AssistantMessage,
    "toolResult": ToolResultMessage,
}


def message_entry(entry_id, role, tokens):
    msg = _CLASSES[role](content=[TextContent(text="x" * (tokens * 4))])
    md = serialize_message_entry(msg)
    return Entry(id=entry_id, type=EntryType.MESSAGE, data=json.dumps(md.to_dict()))


def blob_entry(entry_id, entry_type, payload):
    return Entry(id=entry_id, type=entry_type, data=json.dumps(payload))


def messages_from_entries(entries):
    return [deserialize_message_entry(e) for e in entries if e.type == EntryType.MESSAGE]


def role_of(entry):
    return json.loads(entry.data)["role"]


# is_valid_cut_point


def test_valid_cut_point_user_message():
    assert is_valid_cut_point(message_entry("e1", "user", 1)) is True


def test_valid_cut_point_assistant_message():
    assert is_valid_cut_point(message_entry("e1", "assistant", 1)) is True


def test_valid_cut_point_tool_result_never():
    assert is_valid_cut_point(message_entry("e1", "toolResult", 1)) is False


def test_valid_cut_point_custom_message():
    assert is_valid_cut_point(Entry(type=EntryType.CUSTOM_MESSAGE, data="{}")) is True


def test_valid_cut_point_compaction():
    assert is_valid_cut_point(Entry(type=EntryType.COMPACTION, data="{}")) is True


def test_valid_cut_point_bash_and_branch_summary():
    assert is_valid_cut_point(Entry(type=EntryType.BASH_EXECUTION, data="null")) is True
    assert is_valid_cut_point(Entry(type=EntryType.BRANCH_SUMMARY, data="{}")) is True


def test_valid_cut_point_model_change_invalid():
    assert is_valid_cut_point(Entry(type=EntryType.MODEL_CHANGE, data="{}")) is False


def test_valid_cut_point_undecodable_message():
    assert is_valid_cut_point(Entry(type=EntryType.MESSAGE, data="not json")) is False


# find_turn_start_index


def test_find_turn_start_finds_user_message():
    entries = [
        message_entry("u1", "user", 1),
        message_entry("a1", "assistant", 1),
        message_entry("t1", "toolResult", 1),
        message_entry("a2", "assistant", 1),
    ]
    assert find_turn_start_index(entries, 3) == 0


def test_find_turn_start_bash_execution():
    entries = [
        message_entry("u1", "user", 1),
        blob_entry("b1", EntryType.BASH_EXECUTION, None),
        message_entry("a1", "assistant", 1),
    ]
    assert find_turn_start_index(entries, 2) == 1


def test_find_turn_start_not_found():
    entries = [message_entry("a1", "assistant", 1), message_entry("a2", "assistant", 1)]
    assert find_turn_start_index(entries, 1) == -1


def test_find_turn_start_clamps_index():
    entries = [message_entry("u1", "user", 1), message_entry("a1", "assistant", 1)]
    assert find_turn_start_index(entries, 10) == 0


# find_cut_point


def test_find_cut_point_all_fits_no_cut():
    entries = [message_entry("u1", "user", 10), message_entry("a1", "assistant", 10)]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=100))
    assert res == CutPointResult(cut_index=0, turn_start_index=-1, is_split_turn=False)


def test_find_cut_point_does_not_land_on_tool_result():
    entries = [
        message_entry("u1", "user", 50),
        message_entry("a1", "assistant", 50),
        message_entry("u2", "user", 50),
        message_entry("a2", "assistant", 50),
        message_entry("t1", "toolResult", 50),
        message_entry("a3", "assistant", 50),
    ]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=120))
    assert res.cut_index < len(entries)
    assert role_of(entries[res.cut_index]) != "toolResult"
    assert res.cut_index == 3


def test_find_cut_point_advances_past_tool_result():
    entries = [
        message_entry("u1", "user", 50),
        message_entry("a1", "assistant", 50),
        message_entry("t1", "toolResult", 50),
        message_entry("a2", "assistant", 50),
    ]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=100))
    assert res.cut_index == 3
    assert res.is_split_turn is True
    assert res.turn_start_index == 0


def test_find_cut_point_absorbs_settings_changes():
    entries = [
        message_entry("u1", "user", 10),
        message_entry("a1", "assistant", 10),
        blob_entry("m1", EntryType.MODEL_CHANGE, {"provider": "anthropic", "modelId": "m"}),
        blob_entry("t1", EntryType.THINKING_CHANGE, {"thinkingLevel": "high"}),
        message_entry("u2", "user", 100),
        message_entry("a2", "assistant", 100),
    ]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=150))
    assert res.cut_index == 2
    prev = entries[res.cut_index - 1]
    assert prev.type not in (EntryType.MODEL_CHANGE, EntryType.THINKING_CHANGE)
    assert res.is_split_turn is False
    assert res.turn_start_index == -1


def test_find_cut_point_split_turn_detection():
    entries = [
        message_entry("u1", "user", 50),
        message_entry("a1", "assistant", 50),
        message_entry("u2", "user", 50),
        message_entry("a2a", "assistant", 50),
        message_entry("t2", "toolResult", 50),
        message_entry("a2b", "assistant", 50),
    ]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=120))
    assert res.is_split_turn is True
    assert res.cut_index == 3
    assert res.turn_start_index == 2
    assert role_of(entries[res.turn_start_index]) == "user"


def test_find_cut_point_falls_back_backwards():
    entries = [message_entry("u1", "user", 50), message_entry("t1", "toolResult", 50)]
    res = find_cut_point(entries, messages_from_entries(entries), CompactionSettings(keep_recent_tokens=50))
    assert res.cut_index == 0
    assert res.is_split_turn is False


def test_find_cut_point_empty_entries():
    res = find_cut_point(None, None, CompactionSettings(keep_recent_tokens=100))
    assert res.cut_index == 0
    assert res.turn_start_index == -1