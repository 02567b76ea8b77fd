from gcode.fileops import (
    FileOperations,
    extract_file_ops_from_message,
    extract_file_ops_from_messages,
    format_file_operations,
)
from gcode.messages import AssistantMessage, TextContent, ToolCall, UserMessage


def tool_call(name, path):
    return ToolCall(id="c1", name=name, arguments={"path": path})


def assistant_with_tools(*calls):
    return AssistantMessage(content=list(calls))


def test_extract_read_tool():
    ops = extract_file_ops_from_message(assistant_with_tools(tool_call("read", "/a.txt")))
    assert ops.read == {"/a.txt"}
    assert ops.written == set()
    assert ops.edited == set()


def test_extract_write_tool():
    ops = extract_file_ops_from_message(assistant_with_tools(tool_call("write", "/b.txt")))
    assert ops.written == {"/b.txt"}


def test_extract_edit_tool():
    ops = extract_file_ops_from_message(assistant_with_tools(tool_call("edit", "/c.txt")))
    assert ops.edited == {"/c.txt"}


def test_extract_non_assistant_returns_empty():
    user = UserMessage(content=[TextContent(text="hi")])
    ops = extract_file_ops_from_message(user)
    assert len(ops.read) + len(ops.written) + len(ops.edited) == 0


def test_extract_ignores_unknown_tool():
    ops = extract_file_ops_from_message(assistant_with_tools(tool_call("bash", "/x")))
    assert (ops.read, ops.written, ops.edited) == (set(), set(), set())


def test_extract_messages_accumulates():
    msgs = [
        assistant_with_tools(tool_call("read", "/a.txt")),
        assistant_with_tools(tool_call("edit", "/a.txt"), tool_call("write", "/b.txt")),
    ]
    ops = extract_file_ops_from_messages(msgs)
    assert "/a.txt" in ops.read
    assert "/a.txt" in ops.edited
    assert "/b.txt" in ops.written


def test_compute_file_lists_read_only_vs_modified():
    ops = FileOperations()
    ops.read.add("/only-read.txt")
    ops.written.add("/written.txt")
    ops.edited.add("/edited.txt")
    read_only, modified = ops.compute_file_lists()
    assert read_only == ["/only-read.txt"]
    assert modified == ["/edited.txt", "/written.txt"]


def test_compute_file_lists_read_and_edited_goes_to_modified():
    ops = FileOperations()
    ops.read.add("/f.txt")
    ops.edited.add("/f.txt")
    read_only, modified = ops.compute_file_lists()
    assert read_only == []
    assert modified == ["/f.txt"]


def test_compute_file_lists_empty():
    assert FileOperations().compute_file_lists() == ([], [])


def test_format_file_operations_empty():
    assert format_file_operations(None, None) == ""
    assert format_file_operations([], []) == ""


def test_format_file_operations_both_lists():
    got = format_file_operations(["/a", "/b"], ["/c"])
    assert got == (
        "<read-files>\n/a\n/b\n</read-files>\n"
        "<modified-files>\n/c\n</modified-files>\n"
    )


def test_format_file_operations_read_only():
    got = format_file_operations(["/only"], None)
    assert "<read-files>" in got
    assert "<modified-files>" not in got


def test_merge_combines():
    a = FileOperations()
    a.read.add("/a")
    b = FileOperations()
    b.written.add("/b")
    a.merge(b)
    assert a.read == {"/a"}
    assert a.written == {"/b"}


def test_merge_none_is_noop():
    a = FileOperations()
    a.read.add("/a")
    a.merge(None)
    assert a.read == {"/a"}


def test_extract_ignores_tool_call_without_path():
    asst = AssistantMessage(content=[ToolCall(name="read", arguments={})])
    ops = extract_file_ops_from_message(asst)
    assert ops.read == set()