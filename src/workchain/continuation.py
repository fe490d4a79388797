"""In-memory chains of work, before they are persisted."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from workchain.errors import ChainError
from workchain.models import ExistingWorkPolicy, WorkItem


class ContinuationState(str, Enum):
    """Whether a continuation has been written to the store yet."""

    PENDING = "pending"
    ENQUEUED = "enqueued"


class Continuation:
    """
    A group of sibling work items plus what they wait on.

    Continuations form a DAG: ``then`` hangs a child off one node (fan-out
    when called twice on the same node) and ``combine`` joins several nodes
    (fan-in). A node may be shared by several children; the enqueue engine
    writes it once.

    Example:
        download = Continuation([WorkItem.create("download")])
        resized = download.then(WorkItem.create("resize"), WorkItem.create("thumb"))
        publish = Continuation.combine(resized, other, items=[WorkItem.create("publish")])
        await wc.enqueue(publish)
    """

    def __init__(
        self,
        items: Iterable[WorkItem],
        parents: Iterable[Continuation] = (),
        *,
        unique_name: str | None = None,
        policy: ExistingWorkPolicy = ExistingWorkPolicy.APPEND,
    ) -> None:
        self.items: tuple[WorkItem, ...] = tuple(items)
        if not self.items:
            raise ValueError("A continuation needs at least one work item")
        self.parents: tuple[Continuation, ...] = tuple(parents)
        self.unique_name = unique_name or None
        self.policy = ExistingWorkPolicy.parse(policy)
        self.state = ContinuationState.PENDING

    @property
    def ids(self) -> list[str]:
        """IDs of this node's own items, in order."""
        return [item.id for item in self.items]

    @property
    def is_enqueued(self) -> bool:
        return self.state is ContinuationState.ENQUEUED

    @property
    def is_root(self) -> bool:
        """True when nothing upstream feeds this node."""
        return not self.parents

    def then(self, *items: WorkItem) -> Continuation:
        """
        Chain items that run after everything in this continuation.

        The child carries this node's unique name, so the whole chain is
        found under it. Children have prerequisites and are never
        deduplicated themselves.
        """
        return Continuation(
            items,
            parents=(self,),
            unique_name=self.unique_name,
            policy=ExistingWorkPolicy.KEEP_EXISTING,
        )

    @classmethod
    def combine(
        cls,
        *continuations: Continuation,
        items: Iterable[WorkItem],
    ) -> Continuation:
        """
        Items that run after every one of ``continuations``.

        The unique name is inherited only when all parents share it.
        """
        if not continuations:
            raise ValueError("combine() needs at least one continuation")
        names = {parent.unique_name for parent in continuations}
        unique_name = names.pop() if len(names) == 1 else None
        return cls(
            items,
            parents=continuations,
            unique_name=unique_name,
            policy=ExistingWorkPolicy.KEEP_EXISTING,
        )

    def mark_enqueued(self) -> None:
        """Flip PENDING to ENQUEUED. Happens once per node."""
        if self.is_enqueued:
            raise ChainError(f"Continuation already enqueued ({', '.join(self.ids)})")
        self.state = ContinuationState.ENQUEUED

    def __repr__(self) -> str:
        tasks = ", ".join(item.task for item in self.items)
        return f"Continuation([{tasks}], parents={len(self.parents)}, state={self.state.value})"
