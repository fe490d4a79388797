"""Transitive cancellation of work and everything downstream of it."""

from __future__ import annotations

import logging
from typing import Iterable

from workchain.dispatch import Dispatcher
from workchain.models import WorkState
from workchain.store import WorkDatabase

logger = logging.getLogger(__name__)


class WorkCanceller:
    """
    Cancels work items together with every item that depends on them.

    The ``cancel_*`` methods join the caller's transaction when one is open
    and return the ids they moved to CANCELLED. Telling the dispatcher is a
    separate step (``notify``) so it can wait until the transaction commits.
    """

    def __init__(self, db: WorkDatabase, dispatcher: Dispatcher | None = None) -> None:
        self.db = db
        self.dispatcher = dispatcher

    async def cancel_by_id(self, work_id: str) -> list[str]:
        async with self.db.transaction():
            return await self._cancel_tree([work_id])

    async def cancel_by_tag(self, tag: str) -> list[str]:
        async with self.db.transaction():
            existing = await self.db.get_ids_and_states_for_tag(tag)
            return await self._cancel_tree(row.id for row in existing)

    async def notify(self, work_ids: Iterable[str]) -> None:
        """Pass cancelled ids on to the dispatcher."""
        if self.dispatcher is None:
            return
        for work_id in work_ids:
            await self.dispatcher.cancel(work_id)

    async def _cancel_tree(self, work_ids: Iterable[str]) -> list[str]:
        pending = list(work_ids)
        seen: set[str] = set()
        cancelled: list[str] = []

        while pending:
            work_id = pending.pop()
            if work_id in seen:
                continue
            seen.add(work_id)
            pending.extend(await self.db.get_dependent_ids(work_id))

            item = await self.db.get_work_item(work_id)
            # Finished work keeps its state; dependents are still visited
            if item is None or item.state.is_finished:
                continue
            await self.db.update_work_item(work_id, state=WorkState.CANCELLED)
            cancelled.append(work_id)

        if cancelled:
            logger.debug("Cancelled %d work items: %s", len(cancelled), ", ".join(cancelled))
        return cancelled
