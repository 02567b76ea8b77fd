"""Subprocess plugins speaking line-delimited JSON-RPC over stdin and stdout."""

from __future__ import annotations

import json
import os
import queue
import stat
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .messages import TextContent

_MAX_LINE = 1 << 20
_MISSING = object()


class PluginError(Exception):
    """Raised when a plugin cannot be started or a call to it fails.

    ``result`` holds the tool output when the plugin reported a tool error.
    """

    def __init__(self, message: str, result: Optional["PluginToolResult"] = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass
class PluginToolResult:
    """Output of a plugin tool invocation."""

    content: list = field(default_factory=list)


@dataclass
class PluginTool:
    """A tool reported by a plugin; executing it is proxied to the plugin process."""

    name: str
    description: str
    parameters: Any
    label: str
    plugin: "Plugin" = field(repr=False, compare=False)

    def execute(self, tool_call_id: str, arguments: Dict[str, Any]) -> PluginToolResult:
        """Invoke the tool in the plugin process and return its text output."""
        return self.plugin._invoke(self.name, arguments)


class Plugin:
    """A running plugin process and the tools it registered."""

    def __init__(self, path: str, process: subprocess.Popen) -> None:
        self.name = os.path.basename(path)
        self.path = path
        self._process = process
        self._stdin = process.stdin
        self._stdout = process.stdout
        self._tools: List[PluginTool] = []
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: Dict[int, queue.Queue] = {}
        self._next_id = 0
        self._closed = False
        self._shut = False
        self._reader = threading.Thread(target=self._read_loop, name=f"plugin-{self.name}", daemon=True)
        self._reader.start()

    @property
    def tools(self) -> List[PluginTool]:
        """Tools reported by the plugin during the handshake."""
        return list(self._tools)

    def __enter__(self) -> "Plugin":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Terminate the plugin process; closing twice is harmless."""
        with self._lock:
            if self._shut:
                return
            self._shut = True
            self._closed = True
        try:
            self._stdin.close()
        except OSError:
            pass
        if self._process.poll() is None:
            self._process.kill()
        self._process.wait()
        self._reader.join(timeout=5)
        try:
            self._stdout.close()
        except OSError:
            pass

    # ----- protocol -----

    def _handshake(self) -> None:
        raw = self._call("list_tools")
        if raw is _MISSING:
            raise PluginError("plugin: decode list_tools: missing result")
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise PluginError("plugin: decode list_tools: expected an array")
        tools = []
        for desc in raw:
            if not isinstance(desc, dict):
                raise PluginError("plugin: decode list_tools: expected tool objects")
            name = desc.get("name") or ""
            description = desc.get("description") or ""
            if not isinstance(name, str) or not isinstance(description, str):
                raise PluginError("plugin: decode list_tools: name and description must be strings")
            tools.append(
                PluginTool(
                    name=name,
                    description=description,
                    parameters=desc.get("parameters"),
                    label=name,
                    plugin=self,
                )
            )
        self._tools = tools

    def _invoke(self, name: str, arguments: Dict[str, Any]) -> PluginToolResult:
        raw = self._call("invoke_tool", {"name": name, "arguments": arguments})
        if raw is _MISSING:
            raise PluginError("plugin: decode invoke response: missing result")
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise PluginError("plugin: decode invoke response: expected an object")
        text = raw.get("text") or ""
        is_error = raw.get("is_error") or False
        if not isinstance(text, str) or not isinstance(is_error, bool):
            raise PluginError("plugin: decode invoke response: bad field types")
        result = PluginToolResult(content=[TextContent(text=text)])
        if is_error:
            raise PluginError(f"plugin {self.name}: tool {name} returned an error", result=result)
        return result

    def _call(self, method: str, params: Any = None) -> Any:
        """Send one request and block until its response arrives."""
        request: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        reply: queue.Queue = queue.Queue(maxsize=1)
        with self._lock:
            if self._closed:
                raise PluginError("plugin: closed")
            self._next_id += 1
            request_id = self._next_id
            self._pending[request_id] = reply
        request["id"] = request_id
        if params is not None:
            request["params"] = params
        try:
            try:
                body = json.dumps(request, separators=(",", ":"))
            except (TypeError, ValueError) as exc:
                raise PluginError(f"plugin: marshal request: {exc}") from exc
            try:
                with self._write_lock:
                    self._stdin.write(body.encode("utf-8") + b"\n")
                    self._stdin.flush()
            except (OSError, ValueError) as exc:
                raise PluginError(f"plugin: write: {exc}") from exc
            response = reply.get()
        finally:
            with self._lock:
                self._pending.pop(request_id, None)

        error = response.get("error")
        if error is not None:
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            raise PluginError(f"plugin: {message}")
        return response.get("result", _MISSING)

    def _read_loop(self) -> None:
        """Dispatch responses from stdout to waiting callers until the stream ends."""
        try:
            for line in iter(self._stdout.readline, b""):
                if len(line) > _MAX_LINE:
                    break
                line = line.rstrip(b"\r\n")
                if not line:
                    continue
                try:
                    response = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(response, dict):
                    continue
                response_id = response.get("id", 0)
                if isinstance(response_id, bool) or not isinstance(response_id, int):
                    continue
                with self._lock:
                    reply = self._pending.get(response_id)
                if reply is not None:
                    try:
                        reply.put_nowait(response)
                    except queue.Full:
                        pass
        except (OSError, ValueError):
            pass
        with self._lock:
            self._closed = True
            waiting = list(self._pending.values())
        for reply in waiting:
            try:
                reply.put_nowait({"error": {"code": -1, "message": "plugin stdout closed"}})
            except queue.Full:
                pass


def launch_plugin(path: Union[str, os.PathLike]) -> Plugin:
    """Start a plugin executable and ask it for its tools."""
    path = os.fspath(path)
    try:
        process = subprocess.Popen(
            [path],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None,
        )
    except OSError as exc:
        raise PluginError(f"plugin: start: {exc}") from exc
    plugin = Plugin(path, process)
    try:
        plugin._handshake()
    except BaseException:
        plugin.close()
        raise
    return plugin


def load_plugins(directory: Union[str, os.PathLike]) -> List[Plugin]:
    """Launch every executable file in ``directory``; plugins that fail to start are skipped."""
    if not directory:
        return []
    directory = os.fspath(directory)
    if not os.path.exists(directory):
        return []
    if not os.path.isdir(directory):
        raise PluginError(f"plugin: path {directory!r} is not a directory")

    plugins = []
    for entry in sorted(os.scandir(directory), key=lambda e: e.name):
        try:
            if entry.is_dir():
                continue
            mode = entry.stat().st_mode
        except OSError:
            continue
        if not mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
            continue
        try:
            plugins.append(launch_plugin(entry.path))
        except PluginError:
            continue
    return plugins