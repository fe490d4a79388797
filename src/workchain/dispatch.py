"""Hand-off points between the store and whatever runs the work."""

from __future__ import annotations

import inspect
import logging
from typing import Callable, Protocol, Sequence, runtime_checkable

from workchain.models import WorkItem

logger = logging.getLogger(__name__)


@runtime_checkable
class Dispatcher(Protocol):
    """Receives work once it is safely committed."""

    async def on_ready_for_dispatch(self, items: Sequence[WorkItem]) -> None:
        """Called once per enqueue, after commit, with the ready set."""
        ...

    async def cancel(self, work_id: str) -> None:
        """Stop tracking work that has been cancelled."""
        ...


class CallbackDispatcher:
    """
    Dispatcher that feeds items to a handler one at a time.

    The handler may be sync or async. A failing item is logged and the rest
    of the batch still goes out; nothing is raised back to the enqueuer.

    Example:
        async def run(work):
            await executor.start(work)

        dispatcher = CallbackDispatcher(run)
    """

    def __init__(
        self,
        handler: Callable[[WorkItem], object],
        on_cancel: Callable[[str], object] | None = None,
    ) -> None:
        self.handler = handler
        self.on_cancel = on_cancel

    async def on_ready_for_dispatch(self, items: Sequence[WorkItem]) -> None:
        for item in items:
            try:
                result = self.handler(item)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Dispatch failed for %s (%s)", item.id, item.task)

    async def cancel(self, work_id: str) -> None:
        if self.on_cancel is None:
            return
        try:
            result = self.on_cancel(work_id)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Cancel callback failed for %s", work_id)


class RecordingDispatcher:
    """Keeps every batch and cancellation it sees."""

    def __init__(self) -> None:
        self.batches: list[list[WorkItem]] = []
        self.cancelled: list[str] = []

    @property
    def dispatched(self) -> list[WorkItem]:
        """All dispatched items, flattened in arrival order."""
        return [item for batch in self.batches for item in batch]

    async def on_ready_for_dispatch(self, items: Sequence[WorkItem]) -> None:
        self.batches.append(list(items))

    async def cancel(self, work_id: str) -> None:
        self.cancelled.append(work_id)
