"""Tests for transitive cancellation."""

from workchain import Continuation, EnqueueEngine, RecordingDispatcher, WorkItem, WorkState
from workchain.cancel import WorkCanceller
from workchain.store import WorkDatabase


async def enqueue_diamond(engine):
    root = Continuation([WorkItem.create("root")], unique_name="job")
    left = root.then(WorkItem.create("left"))
    right = root.then(WorkItem.create("right"))
    join = Continuation.combine(left, right, items=[WorkItem.create("join")])
    await engine.enqueue(join)
    return root, left, right, join


class TestCancelById:
    """Cancelling one item and everything downstream."""

    async def test_cancels_all_dependents(self):
        store = await WorkDatabase.open(":memory:")
        engine = EnqueueEngine(store)
        canceller = WorkCanceller(store)
        root, left, right, join = await enqueue_diamond(engine)

        cancelled = await canceller.cancel_by_id(root.ids[0])

        assert sorted(cancelled) == sorted(root.ids + left.ids + right.ids + join.ids)
        for work in await store.list_work_items():
            assert work.state is WorkState.CANCELLED

        await store.close()

    async def test_only_downstream(self):
        store = await WorkDatabase.open(":memory:")
        engine = EnqueueEngine(store)
        canceller = WorkCanceller(store)
        root, left, right, join = await enqueue_diamond(engine)

        cancelled = await canceller.cancel_by_id(left.ids[0])

        assert sorted(cancelled) == sorted(left.ids + join.ids)
        assert (await store.get_work_item(root.ids[0])).state is WorkState.ENQUEUED
        assert (await store.get_work_item(right.ids[0])).state is WorkState.BLOCKED

        await store.close()

    async def test_finished_work_keeps_state(self):
        """Finished items are left alone but their dependents are cancelled."""
        store = await WorkDatabase.open(":memory:")
        engine = EnqueueEngine(store)
        canceller = WorkCanceller(store)
        root, left, right, join = await enqueue_diamond(engine)
        await store.update_work_item(root.ids[0], state=WorkState.SUCCEEDED)

        cancelled = await canceller.cancel_by_id(root.ids[0])

        assert root.ids[0] not in cancelled
        assert (await store.get_work_item(root.ids[0])).state is WorkState.SUCCEEDED
        assert (await store.get_work_item(join.ids[0])).state is WorkState.CANCELLED

        await store.close()

    async def test_unknown_id(self):
        store = await WorkDatabase.open(":memory:")
        assert await WorkCanceller(store).cancel_by_id("nope") == []
        await store.close()


class TestCancelByTag:
    """Cancelling everything under a tag."""

    async def test_cancel_by_tag(self):
        store = await WorkDatabase.open(":memory:")
        engine = EnqueueEngine(store)
        canceller = WorkCanceller(store)
        root, left, right, join = await enqueue_diamond(engine)
        other = WorkItem.create("other")
        await engine.enqueue(Continuation([other]))

        cancelled = await canceller.cancel_by_tag("job")

        assert len(cancelled) == 4
        assert (await store.get_work_item(other.id)).state is WorkState.ENQUEUED

        await store.close()

    async def test_notify_dispatcher(self):
        store = await WorkDatabase.open(":memory:")
        dispatcher = RecordingDispatcher()
        engine = EnqueueEngine(store, dispatcher)
        canceller = WorkCanceller(store, dispatcher)
        root, *_ = await enqueue_diamond(engine)

        cancelled = await canceller.cancel_by_tag("job")
        assert dispatcher.cancelled == []
        await canceller.notify(cancelled)

        assert dispatcher.cancelled == cancelled

        await store.close()

    async def test_joins_open_transaction(self):
        """Inside a caller's transaction the cancellation rolls back with it."""
        store = await WorkDatabase.open(":memory:")
        engine = EnqueueEngine(store)
        canceller = WorkCanceller(store)
        root, *_ = await enqueue_diamond(engine)

        try:
            async with store.transaction():
                await canceller.cancel_by_tag("job")
                raise RuntimeError("abort")
        except RuntimeError:
            pass

        assert (await store.get_work_item(root.ids[0])).state is WorkState.ENQUEUED

        await store.close()
