"""Database operations for workchain."""

from __future__ import annotations

import json

import aiosqlite

SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Work items: everything ever enqueued
CREATE TABLE IF NOT EXISTS work_items (
    id TEXT PRIMARY KEY,
    task TEXT NOT NULL,
    params TEXT,  -- JSON
    state TEXT NOT NULL,
    period_start_time REAL,
    created_at REAL NOT NULL,
    started_at REAL,
    completed_at REAL,
    attempt INTEGER DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_work_items_state ON work_items(state);

-- Dependency edges: work_id waits on prerequisite_id
CREATE TABLE IF NOT EXISTS dependencies (
    work_id TEXT NOT NULL REFERENCES work_items(id) ON DELETE CASCADE,
    prerequisite_id TEXT NOT NULL REFERENCES work_items(id) ON DELETE CASCADE,
    PRIMARY KEY (work_id, prerequisite_id)
);

CREATE INDEX IF NOT EXISTS idx_dependencies_prerequisite ON dependencies(prerequisite_id);

-- Tags, including unique names
CREATE TABLE IF NOT EXISTS work_tags (
    tag TEXT NOT NULL,
    work_id TEXT NOT NULL REFERENCES work_items(id) ON DELETE CASCADE,
    PRIMARY KEY (tag, work_id)
);

CREATE INDEX IF NOT EXISTS idx_work_tags_work ON work_tags(work_id);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """
    Initialize database connection and schema.

    The connection runs in autocommit mode; callers open transactions
    explicitly with BEGIN IMMEDIATE.

    Args:
        db_path: Path to SQLite file or ":memory:" for in-memory.

    Returns:
        Open database connection.
    """
    conn = await aiosqlite.connect(db_path, isolation_level=None)
    conn.row_factory = aiosqlite.Row

    # Enable WAL mode for better concurrency
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")

    # Check if schema exists
    async with conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ) as cursor:
        exists = await cursor.fetchone()

    if not exists:
        # Fresh database - create schema
        await conn.executescript(SCHEMA)
        await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    return conn


async def insert_work_item(conn: aiosqlite.Connection, work: dict) -> None:
    """Insert a work item. Fails on a duplicate id."""
    row = dict(work)
    row["params"] = json.dumps(row.get("params") or {})
    columns = list(row.keys())
    placeholders = ", ".join(["?"] * len(columns))
    column_names = ", ".join(columns)

    await conn.execute(
        f"INSERT INTO work_items ({column_names}) VALUES ({placeholders})",
        list(row.values()),
    )


async def get_work_item(conn: aiosqlite.Connection, work_id: str) -> dict | None:
    """Get a work item by ID."""
    async with conn.execute("SELECT * FROM work_items WHERE id = ?", (work_id,)) as cursor:
        row = await cursor.fetchone()
    return _decode(row) if row else None


async def delete_work_item(conn: aiosqlite.Connection, work_id: str) -> None:
    """Delete a work item; its tags and edges go with it."""
    await conn.execute("DELETE FROM work_items WHERE id = ?", (work_id,))


async def update_work_item(conn: aiosqlite.Connection, work_id: str, **fields) -> None:
    """Update selected columns of a work item."""
    if not fields:
        return
    assignments = ", ".join(f"{name} = ?" for name in fields)
    await conn.execute(
        f"UPDATE work_items SET {assignments} WHERE id = ?",
        [*fields.values(), work_id],
    )


async def insert_dependency(
    conn: aiosqlite.Connection, work_id: str, prerequisite_id: str
) -> None:
    """Record that work_id waits on prerequisite_id."""
    await conn.execute(
        "INSERT INTO dependencies (work_id, prerequisite_id) VALUES (?, ?)",
        (work_id, prerequisite_id),
    )


async def get_dependencies(conn: aiosqlite.Connection, work_id: str) -> list[dict]:
    """Edges on which work_id waits, in insert order."""
    async with conn.execute(
        "SELECT work_id, prerequisite_id FROM dependencies WHERE work_id = ? ORDER BY rowid",
        (work_id,),
    ) as cursor:
        rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def get_dependent_ids(conn: aiosqlite.Connection, work_id: str) -> list[str]:
    """IDs that depend on work_id."""
    async with conn.execute(
        "SELECT work_id FROM dependencies WHERE prerequisite_id = ? ORDER BY rowid",
        (work_id,),
    ) as cursor:
        rows = await cursor.fetchall()
    return [row["work_id"] for row in rows]


async def insert_tag(conn: aiosqlite.Connection, tag: str, work_id: str) -> None:
    """Attach a tag to a work item. Re-tagging is a no-op."""
    await conn.execute(
        "INSERT OR IGNORE INTO work_tags (tag, work_id) VALUES (?, ?)",
        (tag, work_id),
    )


async def get_tags(conn: aiosqlite.Connection, work_id: str) -> set[str]:
    """Tags attached to a work item."""
    async with conn.execute(
        "SELECT tag FROM work_tags WHERE work_id = ?", (work_id,)
    ) as cursor:
        rows = await cursor.fetchall()
    return {row["tag"] for row in rows}


async def get_ids_and_states_for_tag(conn: aiosqlite.Connection, tag: str) -> list[dict]:
    """IDs and states of every item carrying tag, in insert order."""
    async with conn.execute(
        """
        SELECT w.id, w.state FROM work_items w
        JOIN work_tags t ON t.work_id = w.id
        WHERE t.tag = ?
        ORDER BY w.rowid
        """,
        (tag,),
    ) as cursor:
        rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def list_work_items(
    conn: aiosqlite.Connection,
    state: str | None = None,
    tag: str | None = None,
    limit: int = 100,
) -> list[dict]:
    """List work items with optional filters, oldest first."""
    query = "SELECT w.* FROM work_items w"
    params: list = []

    if tag:
        query += " JOIN work_tags t ON t.work_id = w.id AND t.tag = ?"
        params.append(tag)
    query += " WHERE 1=1"
    if state:
        query += " AND w.state = ?"
        params.append(state)

    query += " ORDER BY w.rowid LIMIT ?"
    params.append(limit)

    async with conn.execute(query, params) as cursor:
        rows = await cursor.fetchall()
    return [_decode(row) for row in rows]


def _decode(row: aiosqlite.Row) -> dict:
    data = dict(row)
    data["params"] = json.loads(data["params"]) if data.get("params") else {}
    return data
