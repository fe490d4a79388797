"""Deduplication of uniquely named chains."""

from __future__ import annotations

import logging
from enum import Enum

from workchain.cancel import WorkCanceller
from workchain.models import ExistingWorkPolicy, WorkState
from workchain.store import WorkDatabase

logger = logging.getLogger(__name__)

_LIVE = frozenset({WorkState.ENQUEUED, WorkState.RUNNING})


class Resolution(str, Enum):
    """Outcome of a uniqueness check."""

    PROCEED = "proceed"
    SKIP = "skip"


async def resolve(
    db: WorkDatabase,
    canceller: WorkCanceller,
    unique_name: str | None,
    policy: ExistingWorkPolicy,
    has_prerequisite: bool,
    cancelled: list[str] | None = None,
) -> Resolution:
    """
    Decide whether a root continuation may be written under ``unique_name``.

    Only prerequisite-free work is deduplicated, but every item of a named
    chain carries the tag, so the lookup sees the whole chain. Under
    KEEP_EXISTING, any ENQUEUED or RUNNING item with the name wins and the
    new work is skipped.
    Under REPLACE_EXISTING (or KEEP_EXISTING with nothing live), the old items
    and their dependents are cancelled and the tagged records deleted. APPEND
    leaves existing work alone.

    Must be called inside the enqueue transaction so the lookup and the
    cleanup cannot race another enqueuer.

    Args:
        cancelled: Collects ids moved to CANCELLED, for notifying the
            dispatcher once the transaction commits.
    """
    if not unique_name or has_prerequisite:
        return Resolution.PROCEED

    existing = await db.get_ids_and_states_for_tag(unique_name)
    if not existing:
        return Resolution.PROCEED

    if policy is ExistingWorkPolicy.APPEND:
        return Resolution.PROCEED

    if policy is ExistingWorkPolicy.KEEP_EXISTING:
        if any(row.state in _LIVE for row in existing):
            logger.info("Work named %r is still active; keeping it", unique_name)
            return Resolution.SKIP

    ids = await canceller.cancel_by_tag(unique_name)
    if cancelled is not None:
        cancelled.extend(ids)
    for row in existing:
        await db.delete_work_item(row.id)
    logger.info("Replaced %d existing item(s) named %r", len(existing), unique_name)
    return Resolution.PROCEED
