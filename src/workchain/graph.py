"""Flatten continuation DAGs into a parent-first plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from workchain.continuation import Continuation
from workchain.errors import ChainError

logger = logging.getLogger(__name__)


@dataclass
class PlanStep:
    """One continuation to write, with the ids it must wait on."""

    continuation: Continuation
    prerequisite_ids: list[str] = field(default_factory=list)

    @property
    def has_prerequisite(self) -> bool:
        return bool(self.prerequisite_ids)


def prerequisite_ids(continuation: Continuation) -> list[str]:
    """Union of every parent's item ids, first-seen order, no repeats."""
    ids: dict[str, None] = {}
    for parent in continuation.parents:
        ids.update(dict.fromkeys(parent.ids))
    return list(ids)


def build_plan(roots: Iterable[Continuation]) -> list[PlanStep]:
    """
    Order a continuation forest so every node follows its parents.

    The walk is an iterative post-order DFS keyed on node identity, so a node
    shared by several children (or several roots) shows up once no matter how
    many paths lead to it. Parents enqueued by an earlier call are not
    revisited, but their ids still count as prerequisites of their children.

    Raises:
        ChainError: If the parents form a cycle.
    """
    plan: list[PlanStep] = []
    done: set[int] = set()
    visiting: set[int] = set()

    for root in roots:
        if root.is_enqueued:
            logger.info("Already enqueued work ids (%s)", ", ".join(root.ids))
            continue
        if id(root) in done:
            continue

        visiting.add(id(root))
        stack: list[tuple[Continuation, Iterator[Continuation]]] = [(root, iter(root.parents))]
        while stack:
            node, parents = stack[-1]
            for parent in parents:
                if parent.is_enqueued:
                    logger.info("Already enqueued work ids (%s)", ", ".join(parent.ids))
                    continue
                key = id(parent)
                if key in done:
                    continue
                if key in visiting:
                    raise ChainError(f"Continuation graph has a cycle at {parent!r}")
                visiting.add(key)
                stack.append((parent, iter(parent.parents)))
                break
            else:
                stack.pop()
                visiting.discard(id(node))
                done.add(id(node))
                plan.append(PlanStep(node, prerequisite_ids(node)))

    return plan
