# gcode

This package holds the parts of an LLM coding agent that manage conversation state:

- **Message model** (`gcode.messages`) covers text, thinking, image and tool-call
  content blocks, and user, assistant and tool-result messages. It also covers
  `Model`, `Tool` and `Context`. Each of these types has a `to_dict()`. You can
  encode them with `dumps` and decode them with `loads_message`, `loads_content`,
  `message_from_dict` and `content_from_dict`. Bad input raises `DecodeError`.
- **Session store** (`gcode.database`) is a SQLite database of sessions and
  tree-shaped entry timelines. `open_database(path)` applies the migrations and
  returns a `Database`, which you can also use as a context manager. Pass
  `":memory:"` for a throwaway store. Missing rows raise `NotFoundError`, and other
  failures raise `StoreError`.
- **Records and context building** (`gcode.records`) provides the entry and session
  dataclasses. `build_context(entries)` turns a root-to-leaf branch into the
  messages for the model:
  - it keeps the latest model and thinking-level change;
  - the most recent compaction or branch summary becomes a leading
    "Previous conversation summary" user message.
- **Compaction** spans several modules:

  | Module | What it does |
  |---|---|
  | `gcode.tokens` | Estimates token counts. |
  | `gcode.trigger` | `should_compact` and `is_context_overflow`. |
  | `gcode.cutpoint` | Picks a safe place to split the branch. |
  | `gcode.compaction` | Provides `prepare_compaction` and `compact`. |
  | `gcode.branch` | Provides `prepare_branch_summary` and `summarize_branch`. |

  Summaries come from a model and end with the lists of files that were read or
  modified.
- **Skills** (`gcode.skills`): `load_skills(directory)` loads every `SKILL.md` and
  `*.skill.md` file under a directory. Each file may begin with simple frontmatter.
- **Plugins** (`gcode.plugins`): `launch_plugin` and `load_plugins` start
  executables that speak line-delimited JSON-RPC over stdin/stdout.

## Installing

```
pip install .
```

The package uses only the standard library.

## A short tour

```python
from gcode.database import open_database
from gcode.messages import TextContent, UserMessage
from gcode.records import EntryType, build_context, serialize_message_entry

with open_database(":memory:") as db:
    session = db.create_session("/home/me/project")
    msg = UserMessage(content=[TextContent(text="refactor the parser")])
    entry = db.append_entry(session.id, "", EntryType.MESSAGE, serialize_message_entry(msg))
    context = build_context(db.get_branch(entry.id))
    print(len(context.messages))  # 1
```

`append_entry` handles `data` as follows:

- dataclasses and objects with `to_dict()` are encoded as JSON;
- `str` and `bytes` are stored as already-encoded JSON;
- `None` is stored as `null`.

`Database` offers these queries:

- `get_entry`, `get_entries`, `get_children`, `get_branch` and `get_leaves`;
- `get_branch_entries(from_id, to_id)`, which returns the part of one branch that another branch does not share;
- `create_session`, `get_session`, `list_sessions(cwd, limit)`, `update_session_name` and `delete_session`. Deleting a session also removes its entries.

### Deciding when to compact

```python
from gcode.tokens import estimate_context_tokens
from gcode.trigger import DEFAULT_COMPACTION_SETTINGS, should_compact

tokens = estimate_context_tokens(context.messages)
if should_compact(tokens, 200_000, DEFAULT_COMPACTION_SETTINGS):
    ...
```

`DEFAULT_COMPACTION_SETTINGS` has compaction enabled. It reserves 16384 tokens and
keeps about 20000 recent tokens. A bare `CompactionSettings()` has compaction
disabled and both limits at zero.

### Producing a summary

`prepare_compaction(entries, messages, settings)` chooses the messages to
summarise. It returns `None` when there is nothing to do. The summary itself comes
from `compact(prep, model, api_key, settings, stream)`. Here `stream` is a function
you supply: it takes `(model, context, options)` and yields
`AssistantMessageEvent`s. The text deltas are joined together. An `ERROR` event, or
a final message that carries an error, raises `CompactionError`.

```python
from gcode.compaction import compact, prepare_compaction
from gcode.messages import AssistantMessageEvent, EventType, Model

def stream(model, context, options):
    yield AssistantMessageEvent(type=EventType.TEXT_DELTA, delta="## Goal\n...")

prep = prepare_compaction(entries, messages, DEFAULT_COMPACTION_SETTINGS)
if prep is not None:
    result = compact(prep, Model(id="my-model"), "placeholder", DEFAULT_COMPACTION_SETTINGS, stream)
    print(result.summary, result.read_files, result.modified_files)
```

Suppose the cut falls in the middle of a turn. Then the earlier history and the
start of that turn are summarised in two separate concurrent calls. The two
summaries are joined under a "Current Turn (partial)" heading.

### Skills

A skill is a file named `SKILL.md`, or one whose name ends in `.skill.md`, placed
anywhere under a directory:

```markdown
---
name: git
description: Manage git workflows
trigger: commit, push, branch
---
Use git commands effectively.
```

```python
from gcode.skills import load_skills

for skill in load_skills("skills"):
    print(skill.name, skill.trigger)
```

A missing directory yields an empty list. A path that is not a directory raises
`NotADirectoryError`.

### Plugins

Every executable file in a plugins directory is started. The loader then asks each
plugin for its tools with a `list_tools` request. `PluginTool.execute` forwards the
call as an `invoke_tool` request.

```python
from gcode.plugins import load_plugins

for plugin in load_plugins("plugins"):
    with plugin:
        for tool in plugin.tools:
            print(tool.name, tool.execute("call-1", {"text": "hi"}).content)
```

`PluginError` is raised in these cases:

- a plugin fails to start;
- a request fails;
- a tool reports an error, in which case the output is on `.result`.

## What this package does not do

There is no command-line program, no agent loop and no client for any model
provider. To compact or summarise, you pass in a stream function that talks to a
model yourself. Calling these functions with `stream=None` raises `CompactionError`.

## Running the tests

```
pip install .[test]
pytest
```