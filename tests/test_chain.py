"""Tests for the WorkChain facade."""

import pytest

import workchain
from workchain import (
    InvalidTransition,
    RecordingDispatcher,
    WorkchainError,
    WorkItem,
    WorkState,
)


class TestEnqueue:
    """Enqueueing through the facade."""

    async def test_bare_items_form_one_root(self):
        dispatcher = RecordingDispatcher()
        wc = workchain.WorkChain(dispatcher=dispatcher)
        a, b = WorkItem.create("a"), WorkItem.create("b")

        ready = await wc.enqueue(a, b)

        assert ready == [a, b]
        assert dispatcher.batches == [[a, b]]
        await wc.close()

    async def test_mixed_items_and_continuations(self):
        wc = workchain.WorkChain()
        head = wc.begin_with(WorkItem.create("head"))
        tail = head.then(WorkItem.create("tail"))
        loose = WorkItem.create("loose")

        ready = await wc.enqueue(tail, loose)

        assert {item.task for item in ready} == {"head", "loose"}
        assert len(await wc.list()) == 3
        await wc.close()

    async def test_nothing_to_enqueue(self):
        wc = workchain.WorkChain()
        with pytest.raises(ValueError, match="Nothing to enqueue"):
            await wc.enqueue()
        await wc.close()

    async def test_begin_unique_keeps_existing(self):
        wc = workchain.WorkChain()
        first = wc.begin_unique("sync", "keep", WorkItem.create("sync"))
        second = wc.begin_unique("sync", "keep", WorkItem.create("sync"))

        await wc.enqueue(first)
        ready = await wc.enqueue(second)

        assert ready == []
        assert [item.id for item in await wc.get_by_tag("sync")] == first.ids
        await wc.close()

    async def test_begin_unique_needs_name(self):
        wc = workchain.WorkChain()
        with pytest.raises(ValueError):
            wc.begin_unique("", "keep", WorkItem.create("x"))


class TestQueries:
    """Reading work back."""

    async def test_get_and_list(self):
        wc = workchain.WorkChain()
        head = wc.begin_with(WorkItem.create("head", params={"x": 1}, tags={"etl"}))
        tail_item = WorkItem.create("tail", tags={"etl"})
        await wc.enqueue(head.then(tail_item))

        work = await wc.get(head.ids[0])
        assert work.params == {"x": 1}
        assert work.state is WorkState.ENQUEUED
        assert await wc.get("missing") is None

        assert len(await wc.list(tag="etl")) == 2
        assert [w.id for w in await wc.list(state=WorkState.BLOCKED)] == [tail_item.id]
        assert await wc.get_dependencies(tail_item.id) == head.ids
        assert await wc.get_dependents(head.ids[0]) == [tail_item.id]
        await wc.close()

    async def test_db_requires_open(self):
        wc = workchain.WorkChain()
        with pytest.raises(WorkchainError, match="not open"):
            wc.db


class TestStateChanges:
    """The execution side reporting progress."""

    async def test_lifecycle_stamps(self):
        clock_values = iter([10.0, 20.0, 30.0])
        wc = workchain.WorkChain(clock=lambda: next(clock_values))
        item = WorkItem.create("a")
        await wc.enqueue(item)

        running = await wc.set_state(item.id, WorkState.RUNNING)
        done = await wc.set_state(item.id, WorkState.SUCCEEDED)

        assert running.started_at == 20.0
        assert done.completed_at == 30.0
        assert done.state is WorkState.SUCCEEDED
        await wc.close()

    async def test_retry_bumps_attempt(self):
        wc = workchain.WorkChain()
        item = WorkItem.create("a")
        await wc.enqueue(item)

        await wc.set_state(item.id, WorkState.RUNNING)
        retried = await wc.set_state(item.id, WorkState.ENQUEUED)

        assert retried.attempt == 2
        await wc.close()

    async def test_illegal_transition(self):
        wc = workchain.WorkChain()
        head = wc.begin_with(WorkItem.create("head"))
        tail = WorkItem.create("tail")
        await wc.enqueue(head.then(tail))

        with pytest.raises(InvalidTransition):
            await wc.set_state(tail.id, WorkState.RUNNING)
        assert (await wc.get(tail.id)).state is WorkState.BLOCKED
        await wc.close()

    async def test_unknown_work(self):
        wc = workchain.WorkChain()
        with pytest.raises(WorkchainError, match="Unknown work"):
            await wc.set_state("missing", WorkState.RUNNING)
        await wc.close()


class TestUnblock:
    """Releasing BLOCKED work once prerequisites succeed."""

    async def test_chain_unblocks_step_by_step(self):
        dispatcher = RecordingDispatcher()
        wc = workchain.WorkChain(dispatcher=dispatcher)
        a = wc.begin_with(WorkItem.create("a"))
        b_item = WorkItem.create("b")
        await wc.enqueue(a.then(b_item))

        await wc.set_state(a.ids[0], WorkState.RUNNING)
        await wc.set_state(a.ids[0], WorkState.SUCCEEDED)
        released = await wc.unblock_dependents(a.ids[0])

        assert [item.id for item in released] == [b_item.id]
        assert dispatcher.batches[-1] == released
        stored = await wc.get(b_item.id)
        assert stored.state is WorkState.ENQUEUED
        assert stored.period_start_time is not None
        await wc.close()

    async def test_fan_in_waits_for_all(self):
        wc = workchain.WorkChain()
        left = wc.begin_with(WorkItem.create("left"))
        right = wc.begin_with(WorkItem.create("right"))
        join_item = WorkItem.create("join")
        await wc.enqueue(workchain.Continuation.combine(left, right, items=[join_item]))

        for node in (left, right):
            await wc.set_state(node.ids[0], WorkState.RUNNING)
        await wc.set_state(left.ids[0], WorkState.SUCCEEDED)
        assert await wc.unblock_dependents(left.ids[0]) == []

        await wc.set_state(right.ids[0], WorkState.SUCCEEDED)
        released = await wc.unblock_dependents(right.ids[0])

        assert [item.id for item in released] == [join_item.id]
        await wc.close()


class TestCancel:
    """Cancelling through the facade notifies the dispatcher."""

    async def test_cancel_unique(self):
        dispatcher = RecordingDispatcher()
        wc = workchain.WorkChain(dispatcher=dispatcher)
        node = wc.begin_unique("sync", "replace", WorkItem.create("sync"))
        tail = WorkItem.create("report")
        await wc.enqueue(node.then(tail))

        cancelled = await wc.cancel_unique("sync")

        assert set(cancelled) == {node.ids[0], tail.id}
        assert set(dispatcher.cancelled) == set(cancelled)
        assert (await wc.get(tail.id)).state is WorkState.CANCELLED
        await wc.close()

    async def test_cancel(self):
        wc = workchain.WorkChain()
        item = WorkItem.create("a")
        await wc.enqueue(item)

        assert await wc.cancel(item.id) == [item.id]
        assert await wc.cancel(item.id) == []
        await wc.close()


class TestRecovery:
    """Work persisted before a crash is dispatched again."""

    async def test_reschedule_after_restart(self, tmp_path):
        path = str(tmp_path / "work.db")

        async with workchain.WorkChain(path) as wc:
            head = wc.begin_with(WorkItem.create("head"))
            await wc.enqueue(head.then(WorkItem.create("tail")))

        dispatcher = RecordingDispatcher()
        async with workchain.WorkChain(path, dispatcher=dispatcher) as wc:
            ready = await wc.reschedule_pending()

        assert [item.id for item in ready] == head.ids
        assert dispatcher.dispatched == ready

    async def test_reschedule_skips_unsatisfied(self):
        wc = workchain.WorkChain()
        head = wc.begin_with(WorkItem.create("head"))
        await wc.enqueue(head)
        await wc.set_state(head.ids[0], WorkState.RUNNING)
        await wc.set_state(head.ids[0], WorkState.FAILED)

        tail = WorkItem.create("tail")
        await wc.enqueue(head.then(tail))
        await wc.db.update_work_item(tail.id, state=WorkState.ENQUEUED)

        assert await wc.reschedule_pending() == []
        await wc.close()
