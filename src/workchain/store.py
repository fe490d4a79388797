"""Transactional work store built on the database functions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from workchain import db
from workchain.errors import TransactionAborted, WorkchainError
from workchain.models import Dependency, IdAndState, WorkItem, WorkState

logger = logging.getLogger(__name__)


class WorkDatabase:
    """
    Owns one SQLite connection and the transaction around it.

    Transactions nest. Only the outermost ``begin`` issues BEGIN IMMEDIATE and
    only the outermost ``commit`` or ``rollback`` ends it. A rollback at an
    inner level dooms the whole transaction.

    Tasks in this process are serialized on a lock held for the lifetime of
    the outermost transaction; other processes wait on SQLite's write lock.

    Example:
        store = await WorkDatabase.open(":memory:")
        async with store.transaction():
            await store.insert_work_item(item)
            await store.insert_tag("nightly", item.id)
        await store.close()
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._depth = 0
        self._doomed = False

    @classmethod
    async def open(cls, db_path: str = ":memory:") -> WorkDatabase:
        """Connect and make sure the schema exists."""
        conn = await db.init_db(db_path)
        return cls(conn)

    async def close(self) -> None:
        await self.conn.close()

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        """True when the current task holds an open transaction."""
        return self._depth > 0 and self._owner is asyncio.current_task()

    async def begin(self) -> None:
        """Open a transaction, or join the one this task already holds."""
        if self.in_transaction:
            self._depth += 1
            return

        await self._lock.acquire()
        try:
            await self.conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            self._lock.release()
            raise
        self._owner = asyncio.current_task()
        self._depth = 1
        self._doomed = False

    async def commit(self) -> None:
        """Leave one level; the outermost level commits."""
        self._require_owner()
        self._depth -= 1
        if self._depth > 0:
            return

        if self._doomed:
            await self._finish("ROLLBACK")
            raise TransactionAborted("A nested transaction rolled back; nothing was committed")
        await self._finish("COMMIT")

    async def rollback(self) -> None:
        """Leave one level and doom the transaction; the outermost level aborts."""
        self._require_owner()
        self._depth -= 1
        self._doomed = True
        if self._depth > 0:
            return
        await self._finish("ROLLBACK")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[WorkDatabase]:
        """Run a block inside a (possibly nested) transaction."""
        await self.begin()
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()

    def _require_owner(self) -> None:
        if not self.in_transaction:
            raise WorkchainError("No transaction is open for this task")

    async def _finish(self, statement: str) -> None:
        try:
            await self.conn.execute(statement)
        finally:
            self._owner = None
            self._doomed = False
            self._lock.release()
        logger.debug("Transaction finished with %s", statement)

    # --- Work items ---

    async def get_work_item(self, work_id: str) -> WorkItem | None:
        """Get a work item with its tags, or None."""
        row = await db.get_work_item(self.conn, work_id)
        if row is None:
            return None
        return self._to_work_item(row, await db.get_tags(self.conn, work_id))

    async def insert_work_item(self, item: WorkItem) -> None:
        """Insert the item row. Tags are written separately."""
        await db.insert_work_item(self.conn, {
            "id": item.id,
            "task": item.task,
            "params": item.params,
            "state": item.state.value,
            "period_start_time": item.period_start_time,
            "created_at": item.created_at,
            "started_at": item.started_at,
            "completed_at": item.completed_at,
            "attempt": item.attempt,
        })

    async def delete_work_item(self, work_id: str) -> None:
        await db.delete_work_item(self.conn, work_id)

    async def update_work_item(self, work_id: str, **fields) -> None:
        if "state" in fields and isinstance(fields["state"], WorkState):
            fields["state"] = fields["state"].value
        await db.update_work_item(self.conn, work_id, **fields)

    async def list_work_items(
        self,
        state: WorkState | None = None,
        tag: str | None = None,
        limit: int = 100,
    ) -> list[WorkItem]:
        rows = await db.list_work_items(
            self.conn,
            state=state.value if state else None,
            tag=tag,
            limit=limit,
        )
        return [
            self._to_work_item(row, await db.get_tags(self.conn, row["id"]))
            for row in rows
        ]

    # --- Dependencies ---

    async def insert_dependency(self, work_id: str, prerequisite_id: str) -> None:
        await db.insert_dependency(self.conn, work_id, prerequisite_id)

    async def get_dependencies(self, work_id: str) -> list[Dependency]:
        """Edges from work_id to each of its prerequisites."""
        rows = await db.get_dependencies(self.conn, work_id)
        return [Dependency(**row) for row in rows]

    async def get_prerequisite_ids(self, work_id: str) -> list[str]:
        return [dep.prerequisite_id for dep in await self.get_dependencies(work_id)]

    async def get_dependent_ids(self, work_id: str) -> list[str]:
        return await db.get_dependent_ids(self.conn, work_id)

    # --- Tags ---

    async def insert_tag(self, tag: str, work_id: str) -> None:
        await db.insert_tag(self.conn, tag, work_id)

    async def get_ids_and_states_for_tag(self, tag: str) -> list[IdAndState]:
        """IDs and states under a tag, in insert order."""
        rows = await db.get_ids_and_states_for_tag(self.conn, tag)
        return [IdAndState(id=row["id"], state=WorkState(row["state"])) for row in rows]

    @staticmethod
    def _to_work_item(row: dict, tags: set[str]) -> WorkItem:
        return WorkItem(
            id=row["id"],
            task=row["task"],
            params=row["params"],
            state=WorkState(row["state"]),
            tags=tags,
            period_start_time=row["period_start_time"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            attempt=row["attempt"],
        )
