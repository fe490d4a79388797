"""The enqueue engine: continuations in, persisted graph and ready set out."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable

import aiosqlite

from workchain.cancel import WorkCanceller
from workchain.continuation import Continuation
from workchain.dispatch import Dispatcher
from workchain.errors import EnqueueError
from workchain.graph import PlanStep, build_plan
from workchain.models import WorkItem, WorkState, initial_state
from workchain.store import WorkDatabase
from workchain.unique import Resolution, resolve

logger = logging.getLogger(__name__)


class EnqueueEngine:
    """
    Writes continuation graphs to the store in one transaction.

    Parents are written before children. Root continuations with a unique
    name are deduplicated against earlier work first. Items that wait on
    nothing are handed to the dispatcher after the transaction commits.

    Example:
        engine = EnqueueEngine(store, dispatcher)
        first = Continuation([WorkItem.create("fetch")])
        ready = await engine.enqueue(first.then(WorkItem.create("parse")))
        # ready holds the "fetch" item; "parse" is BLOCKED
    """

    def __init__(
        self,
        db: WorkDatabase,
        dispatcher: Dispatcher | None = None,
        canceller: WorkCanceller | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.canceller = canceller or WorkCanceller(db, dispatcher)
        self.clock = clock

    async def enqueue(self, *continuations: Continuation) -> list[WorkItem]:
        """
        Persist continuations and dispatch whatever can run right away.

        Returns:
            The ready set: items of every written node that had no
            prerequisites, in write order.

        Raises:
            EnqueueError: If the store failed; nothing from this call is kept.
            ChainError: If the continuations form a cycle.
        """
        ready: list[WorkItem] = []
        cancelled: list[str] = []
        written: list[tuple[WorkItem, WorkItem]] = []
        plan: list[PlanStep] = []

        try:
            async with self.db.transaction():
                plan = build_plan(continuations)
                dropped: set[int] = set()
                for step in plan:
                    await self._enqueue_step(step, ready, cancelled, dropped, written)
        except aiosqlite.Error as exc:
            raise EnqueueError(f"Enqueue rolled back: {exc}") from exc

        # Caller's items only change once the rows are committed
        for item, stored in written:
            item.state = stored.state
            item.created_at = stored.created_at
            item.period_start_time = stored.period_start_time
            item.tags = set(stored.tags)
        for step in plan:
            step.continuation.mark_enqueued()

        await self.canceller.notify(cancelled)
        await self.dispatch(ready)
        return ready

    async def _enqueue_step(
        self,
        step: PlanStep,
        ready: list[WorkItem],
        cancelled: list[str],
        dropped: set[int],
        written: list[tuple[WorkItem, WorkItem]],
    ) -> None:
        node = step.continuation

        if any(id(parent) in dropped for parent in node.parents):
            logger.info("Upstream work was not enqueued; skipping %s", ", ".join(node.ids))
            dropped.add(id(node))
            return

        # Prerequisites can be gone when a unique chain was replaced
        all_succeeded = True
        for prerequisite_id in step.prerequisite_ids:
            prerequisite = await self.db.get_work_item(prerequisite_id)
            if prerequisite is None:
                logger.error("Prerequisite %s doesn't exist; not enqueuing", prerequisite_id)
                dropped.add(id(node))
                return
            all_succeeded = all_succeeded and prerequisite.state is WorkState.SUCCEEDED

        if node.is_root:
            resolution = await resolve(
                self.db,
                self.canceller,
                node.unique_name,
                node.policy,
                step.has_prerequisite,
                cancelled,
            )
            if resolution is Resolution.SKIP:
                dropped.add(id(node))
                return

        state = initial_state(step.has_prerequisite, all_succeeded)
        for item in node.items:
            now = self.clock()
            tags = set(item.tags)
            if node.unique_name:
                tags.add(node.unique_name)
            stored = dataclasses.replace(
                item,
                state=state,
                created_at=now,
                # Blocked work gets its start time when it is unblocked
                period_start_time=now if state is WorkState.ENQUEUED else None,
                tags=tags,
            )

            await self.db.insert_work_item(stored)
            for prerequisite_id in step.prerequisite_ids:
                await self.db.insert_dependency(stored.id, prerequisite_id)
            for tag in sorted(stored.tags):
                await self.db.insert_tag(tag, stored.id)
            written.append((item, stored))

        logger.debug(
            "Enqueued %d item(s) as %s with %d prerequisite(s)",
            len(node.items), state.value, len(step.prerequisite_ids),
        )
        if not step.has_prerequisite:
            ready.extend(node.items)

    async def dispatch(self, ready: list[WorkItem]) -> None:
        """Hand items to the dispatcher. Failures are logged, not raised."""
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.on_ready_for_dispatch(ready)
        except Exception:
            # Persisted work stays; a rescan picks it up
            logger.exception("Dispatcher rejected %d ready item(s)", len(ready))
