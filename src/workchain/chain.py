"""WorkChain facade: one store, one engine, one dispatcher."""

from __future__ import annotations

import logging
import time
from typing import Callable

from workchain.cancel import WorkCanceller
from workchain.continuation import Continuation
from workchain.dispatch import Dispatcher
from workchain.engine import EnqueueEngine
from workchain.errors import WorkchainError
from workchain.models import ExistingWorkPolicy, WorkItem, WorkState, check_transition
from workchain.store import WorkDatabase

logger = logging.getLogger(__name__)


class WorkChain:
    """
    Durable scheduling of dependent work.

    workchain decides WHEN work may run. The dispatcher decides HOW.

    Example:
        async with WorkChain("work.db", dispatcher=dispatcher) as wc:
            fetch = wc.begin_with(WorkItem.create("fetch", params={"url": url}))
            await wc.enqueue(fetch.then(WorkItem.create("parse")))
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        dispatcher: Dispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = db_path
        self.dispatcher = dispatcher
        self.clock = clock

        self._db: WorkDatabase | None = None
        self._engine: EnqueueEngine | None = None
        self._canceller: WorkCanceller | None = None

    # --- Lifecycle ---

    async def open(self) -> None:
        """Connect to the database. Called lazily by every operation."""
        if self._db is not None:
            return
        self._db = await WorkDatabase.open(self.db_path)
        self._canceller = WorkCanceller(self._db, self.dispatcher)
        self._engine = EnqueueEngine(self._db, self.dispatcher, self._canceller, self.clock)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            self._engine = None
            self._canceller = None

    async def __aenter__(self) -> WorkChain:
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def db(self) -> WorkDatabase:
        if self._db is None:
            raise WorkchainError("WorkChain is not open")
        return self._db

    # --- Building chains ---

    def begin_with(self, *items: WorkItem) -> Continuation:
        """Start a chain with items that wait on nothing."""
        return Continuation(items)

    def begin_unique(
        self,
        name: str,
        policy: ExistingWorkPolicy | str,
        *items: WorkItem,
    ) -> Continuation:
        """
        Start a chain that is the only active chain called ``name``.

        Args:
            name: Unique name, stored as a tag on every item of the root.
            policy: KEEP_EXISTING, REPLACE_EXISTING or APPEND (or their
                string values).
        """
        if not name:
            raise ValueError("Unique work needs a name")
        return Continuation(items, unique_name=name, policy=ExistingWorkPolicy.parse(policy))

    # --- Enqueue ---

    async def enqueue(self, *work: WorkItem | Continuation) -> list[WorkItem]:
        """
        Persist work and dispatch what can run now.

        Bare WorkItems are grouped into one root continuation.

        Returns:
            Items handed to the dispatcher.
        """
        await self.open()
        continuations = [w for w in work if isinstance(w, Continuation)]
        items = [w for w in work if isinstance(w, WorkItem)]
        if items:
            continuations.append(Continuation(items))
        if not continuations:
            raise ValueError("Nothing to enqueue")
        return await self._engine.enqueue(*continuations)

    # --- Queries ---

    async def get(self, work_id: str) -> WorkItem | None:
        await self.open()
        return await self.db.get_work_item(work_id)

    async def list(
        self,
        *,
        state: WorkState | None = None,
        tag: str | None = None,
        limit: int = 100,
    ) -> list[WorkItem]:
        """List work items, oldest first, with optional filters."""
        await self.open()
        return await self.db.list_work_items(state=state, tag=tag, limit=limit)

    async def get_by_tag(self, tag: str) -> list[WorkItem]:
        await self.open()
        rows = await self.db.get_ids_and_states_for_tag(tag)
        items = [await self.db.get_work_item(row.id) for row in rows]
        return [item for item in items if item is not None]

    async def get_dependencies(self, work_id: str) -> list[str]:
        await self.open()
        return await self.db.get_prerequisite_ids(work_id)

    async def get_dependents(self, work_id: str) -> list[str]:
        await self.open()
        return await self.db.get_dependent_ids(work_id)

    # --- Cancellation ---

    async def cancel(self, work_id: str) -> list[str]:
        """
        Cancel a work item and everything downstream of it.

        Returns:
            IDs that moved to CANCELLED (finished work is left as is).
        """
        await self.open()
        cancelled = await self._canceller.cancel_by_id(work_id)
        await self._canceller.notify(cancelled)
        return cancelled

    async def cancel_by_tag(self, tag: str) -> list[str]:
        await self.open()
        cancelled = await self._canceller.cancel_by_tag(tag)
        await self._canceller.notify(cancelled)
        return cancelled

    async def cancel_unique(self, name: str) -> list[str]:
        """Cancel the chain registered under a unique name."""
        return await self.cancel_by_tag(name)

    # --- Execution side ---

    async def set_state(self, work_id: str, state: WorkState) -> WorkItem:
        """
        Move a work item to a new state, enforcing legal transitions.

        Stamps started_at on RUNNING and completed_at on finished states.

        Raises:
            WorkchainError: If the item does not exist.
            InvalidTransition: If the move is not allowed.
        """
        await self.open()
        async with self.db.transaction():
            item = await self.db.get_work_item(work_id)
            if item is None:
                raise WorkchainError(f"Unknown work: {work_id}")
            check_transition(item.state, state)

            fields: dict = {"state": state}
            now = self.clock()
            if state is WorkState.RUNNING:
                fields["started_at"] = now
            elif state is WorkState.ENQUEUED and item.state is WorkState.RUNNING:
                fields["attempt"] = item.attempt + 1
            if state.is_finished:
                fields["completed_at"] = now
            await self.db.update_work_item(work_id, **fields)
        return await self.db.get_work_item(work_id)

    async def unblock_dependents(self, work_id: str) -> list[WorkItem]:
        """
        Release BLOCKED dependents of work that has succeeded.

        A dependent moves to ENQUEUED only when every one of its
        prerequisites has SUCCEEDED. Released items are dispatched after the
        transaction commits.
        """
        await self.open()
        released: list[WorkItem] = []
        async with self.db.transaction():
            for dependent_id in await self.db.get_dependent_ids(work_id):
                dependent = await self.db.get_work_item(dependent_id)
                if dependent is None or dependent.state is not WorkState.BLOCKED:
                    continue
                if not await self._prerequisites_succeeded(dependent_id):
                    continue
                now = self.clock()
                await self.db.update_work_item(
                    dependent_id, state=WorkState.ENQUEUED, period_start_time=now,
                )
                dependent.state = WorkState.ENQUEUED
                dependent.period_start_time = now
                released.append(dependent)

        if released:
            logger.debug("Unblocked %d item(s) after %s", len(released), work_id)
        await self._engine.dispatch(released)
        return released

    async def reschedule_pending(self, limit: int = 1000) -> list[WorkItem]:
        """
        Dispatch ENQUEUED work again, e.g. after a crash between commit and
        dispatch. Items whose prerequisites have not all succeeded are left
        alone.
        """
        await self.open()
        ready = []
        for item in await self.db.list_work_items(state=WorkState.ENQUEUED, limit=limit):
            if await self._prerequisites_succeeded(item.id):
                ready.append(item)
        logger.info("Rescheduling %d enqueued item(s)", len(ready))
        await self._engine.dispatch(ready)
        return ready

    async def _prerequisites_succeeded(self, work_id: str) -> bool:
        for prerequisite_id in await self.db.get_prerequisite_ids(work_id):
            prerequisite = await self.db.get_work_item(prerequisite_id)
            if prerequisite is None or prerequisite.state is not WorkState.SUCCEEDED:
                return False
        return True
