"""SQLite persistence for sessions and their timeline entries."""

from __future__ import annotations

import dataclasses
import json
import os
import sqlite3
import time
from enum import Enum
from typing import Any, Iterable, Optional, Union

from .records import Entry, EntryType, Session, new_entry_id, new_session_id


class StoreError(Exception):
    """Raised when a store operation fails."""


class NotFoundError(StoreError, LookupError):
    """Raised when a session or entry does not exist."""


# Applied in order. Never renumber or reorder: new schema changes append a step.
_MIGRATION_V1 = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id              TEXT PRIMARY KEY,
    version         INTEGER NOT NULL DEFAULT 3,
    cwd             TEXT NOT NULL,
    parent_session  TEXT,
    created_at      INTEGER NOT NULL,
    name            TEXT
);

CREATE TABLE IF NOT EXISTS entries (
    id          TEXT PRIMARY KEY,
    session_id  TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    parent_id   TEXT,
    type        TEXT NOT NULL,
    timestamp   INTEGER NOT NULL,
    data        BLOB NOT NULL,
    FOREIGN KEY (parent_id) REFERENCES entries(id)
);

CREATE INDEX IF NOT EXISTS idx_entries_session ON entries(session_id);
CREATE INDEX IF NOT EXISTS idx_entries_parent  ON entries(parent_id);
CREATE INDEX IF NOT EXISTS idx_entries_type    ON entries(session_id, type);
"""

_MIGRATIONS = ((1, _MIGRATION_V1),)

_ENTRY_COLUMNS = "id, session_id, parent_id, type, timestamp, data"
_SESSION_COLUMNS = "id, version, cwd, parent_session, created_at, name"


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            _camel(f.name): _jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(_jsonable(k)): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _encode_entry_data(data: Any) -> bytes:
    """Encode entry data; text and bytes are taken as already encoded JSON."""
    if data is None:
        return b"null"
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    try:
        return json.dumps(_jsonable(data), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise StoreError(f"store: marshal entry data: {exc}") from exc


def _entry_type(value: str) -> Union[EntryType, str]:
    try:
        return EntryType(value)
    except ValueError:
        return value


def _entry_from_row(row: tuple) -> Entry:
    entry_id, session_id, parent_id, entry_type, timestamp, data = row
    if isinstance(data, (bytes, bytearray, memoryview)):
        data = bytes(data).decode("utf-8", errors="replace")
    return Entry(
        id=entry_id,
        session_id=session_id,
        parent_id=parent_id or "",
        type=_entry_type(entry_type),
        timestamp=timestamp,
        data=data,
    )


def _session_from_row(row: tuple) -> Session:
    session_id, version, cwd, parent_session, created_at, name = row
    return Session(
        id=session_id,
        version=version,
        cwd=cwd,
        parent_session=parent_session or "",
        created_at=created_at,
        name=name or "",
    )


class Database:
    """A SQLite database holding sessions and their entry trees.

    Opening enables WAL journaling and foreign keys and applies pending
    migrations. Use ":memory:" for an ephemeral database.
    """

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        try:
            self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
                os.fspath(path), isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise StoreError(f"store: open: {exc}") from exc
        try:
            for pragma, what in (
                ("PRAGMA journal_mode=WAL", "enable WAL"),
                ("PRAGMA foreign_keys=ON", "enable foreign keys"),
                ("PRAGMA synchronous=NORMAL", "set synchronous"),
            ):
                try:
                    self._conn.execute(pragma)
                except sqlite3.Error as exc:
                    raise StoreError(f"store: {what}: {exc}") from exc
            self.migrate()
        except StoreError:
            self._conn.close()
            self._conn = None
            raise

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the connection; closing twice is harmless."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ----- low-level helpers -----

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("store: database is closed")
        return self._conn

    def _execute(self, sql: str, params: Iterable[Any] = (), what: str = "query") -> sqlite3.Cursor:
        try:
            return self._connection().execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise StoreError(f"store: {what}: {exc}") from exc

    def _entries(self, sql: str, params: Iterable[Any], what: str) -> list:
        return [_entry_from_row(row) for row in self._execute(sql, params, what).fetchall()]

    # ----- schema -----

    def migrate(self) -> None:
        """Bring the schema up to the latest version; already applied steps are skipped."""
        self._execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)",
            what="migrate: create schema_version",
        )
        current = self.schema_version()
        conn = self._connection()
        for version, sql in _MIGRATIONS:
            if version <= current:
                continue
            script = (
                "BEGIN;\n"
                f"{sql}\n"
                "DELETE FROM schema_version;\n"
                f"INSERT INTO schema_version(version) VALUES ({int(version)});\n"
                "COMMIT;"
            )
            try:
                conn.executescript(script)
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StoreError(f"store: migrate: v{version}: {exc}") from exc
            current = version

    def schema_version(self) -> int:
        """The schema version currently applied, 0 when none."""
        row = self._execute(
            "SELECT COALESCE(MAX(version), 0) FROM schema_version",
            what="read schema_version",
        ).fetchone()
        return int(row[0]) if row else 0

    # ----- entries -----

    def append_entry(
        self,
        session_id: str,
        parent_id: str,
        entry_type: Union[EntryType, str],
        data: Any,
    ) -> Entry:
        """Insert a new entry under ``parent_id`` (empty for a root) and return it."""
        raw = _encode_entry_data(data)
        type_value = entry_type.value if isinstance(entry_type, Enum) else str(entry_type)
        entry = Entry(
            id=new_entry_id(),
            session_id=session_id,
            parent_id=parent_id or "",
            type=_entry_type(type_value),
            timestamp=_now_millis(),
            data=raw.decode("utf-8", errors="replace"),
        )
        self._execute(
            "INSERT INTO entries (id, session_id, parent_id, type, timestamp, data) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (entry.id, session_id, parent_id or None, type_value, entry.timestamp, raw),
            what="append entry",
        )
        return entry

    def get_entry(self, entry_id: str) -> Entry:
        """Fetch one entry; raises NotFoundError for unknown IDs."""
        row = self._execute(
            f"SELECT {_ENTRY_COLUMNS} FROM entries WHERE id = ?",
            (entry_id,),
            what="get entry",
        ).fetchone()
        if row is None:
            raise NotFoundError(f"store: entry {entry_id!r} not found")
        return _entry_from_row(row)

    def get_entries(self, session_id: str) -> list:
        """All entries of a session, oldest first."""
        return self._entries(
            f"SELECT {_ENTRY_COLUMNS} FROM entries WHERE session_id = ? "
            "ORDER BY timestamp ASC, rowid ASC",
            (session_id,),
            "get entries",
        )

    def get_children(self, entry_id: str) -> list:
        """The direct children of an entry, oldest first."""
        return self._entries(
            f"SELECT {_ENTRY_COLUMNS} FROM entries WHERE parent_id = ? "
            "ORDER BY timestamp ASC, rowid ASC",
            (entry_id,),
            "get children",
        )

    def get_branch(self, entry_id: str) -> list:
        """The root-to-leaf chain of entries ending at ``entry_id``."""
        return self._entries(
            """WITH RECURSIVE branch(id, session_id, parent_id, type, timestamp, data, depth) AS (
                SELECT id, session_id, parent_id, type, timestamp, data, 0
                FROM entries WHERE id = ?
                UNION ALL
                SELECT e.id, e.session_id, e.parent_id, e.type, e.timestamp, e.data, b.depth + 1
                FROM entries e
                JOIN branch b ON e.id = b.parent_id
            )
            SELECT id, session_id, parent_id, type, timestamp, data
            FROM branch
            ORDER BY depth DESC""",
            (entry_id,),
            "get branch",
        )

    def get_leaves(self, session_id: str) -> list:
        """Entries of a session with no children, most recent first."""
        return self._entries(
            "SELECT e.id, e.session_id, e.parent_id, e.type, e.timestamp, e.data "
            "FROM entries e WHERE e.session_id = ? "
            "AND NOT EXISTS (SELECT 1 FROM entries c WHERE c.parent_id = e.id) "
            "ORDER BY e.timestamp DESC, e.rowid DESC",
            (session_id,),
            "get leaves",
        )

    def get_branch_entries(self, from_id: str, to_id: str) -> list:
        """Entries on the branch ending at ``from_id`` that are not ancestors of ``to_id``."""
        shared = {entry.id for entry in self.get_branch(to_id)}
        return [entry for entry in self.get_branch(from_id) if entry.id not in shared]

    # ----- sessions -----

    def create_session(self, cwd: str) -> Session:
        """Insert a new session for the working directory ``cwd``."""
        session = Session(id=new_session_id(), version=3, cwd=cwd, created_at=_now_millis())
        self._execute(
            "INSERT INTO sessions (id, version, cwd, parent_session, created_at, name) "
            "VALUES (?, ?, ?, NULL, ?, NULL)",
            (session.id, session.version, session.cwd, session.created_at),
            what="create session",
        )
        return session

    def get_session(self, session_id: str) -> Session:
        """Fetch one session; raises NotFoundError for unknown IDs."""
        row = self._execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?",
            (session_id,),
            what="get session",
        ).fetchone()
        if row is None:
            raise NotFoundError(f"store: session {session_id!r} not found")
        return _session_from_row(row)

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list:
        """Sessions, newest first, optionally filtered by exact ``cwd`` and capped by ``limit``."""
        query = f"SELECT {_SESSION_COLUMNS} FROM sessions"
        params: list = []
        if cwd:
            query += " WHERE cwd = ?"
            params.append(cwd)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit > 0:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._execute(query, params, what="list sessions").fetchall()
        return [_session_from_row(row) for row in rows]

    def update_session_name(self, session_id: str, name: str) -> None:
        """Set the label of a session; raises NotFoundError for unknown IDs."""
        cursor = self._execute(
            "UPDATE sessions SET name = ? WHERE id = ?",
            (name, session_id),
            what="update session name",
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"store: session {session_id!r} not found")

    def delete_session(self, session_id: str) -> None:
        """Remove a session and its entries; raises NotFoundError for unknown IDs."""
        cursor = self._execute(
            "DELETE FROM sessions WHERE id = ?",
            (session_id,),
            what="delete session",
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"store: session {session_id!r} not found")


def open_database(path: Union[str, os.PathLike]) -> Database:
    """Open (or create) the database at ``path`` and apply migrations."""
    return Database(path)