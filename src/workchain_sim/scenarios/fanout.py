"""Fanout scenario - split → N × process → aggregate.

One split fans out into several process items that share it as parent;
the aggregate waits on all of them (fan-in).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from workchain import Continuation, WorkItem
from workchain_sim.scenarios import Scenario, ScenarioInfo

if TYPE_CHECKING:
    import workchain
    from workchain_sim.display import SimulationState
    from workchain_sim.runner import SimConfig


class FanoutScenario(Scenario):
    """Fan-out/fan-in batches."""

    FANOUT_SIZE = 4

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="fanout",
            description=f"1 split → {self.FANOUT_SIZE} process → 1 aggregate",
        )

    async def submit_workload(
        self, chain: "workchain.WorkChain", config: "SimConfig", state: "SimulationState"
    ) -> None:
        for i in range(config.count):
            batch_id = f"batch_{i:04d}"
            split = chain.begin_with(WorkItem.create("split", params={"batch_id": batch_id}))

            # Each branch is its own continuation hanging off the shared split
            branches = [
                split.then(WorkItem.create("process", params={"batch_id": batch_id, "index": n}))
                for n in range(self.FANOUT_SIZE)
            ]
            aggregate = Continuation.combine(
                *branches,
                items=[WorkItem.create("aggregate", params={"batch_id": batch_id})],
            )

            await chain.enqueue(aggregate)
            state.chains += 1
            state.submitted += self.FANOUT_SIZE + 2
            state.add_event("queued", split.ids[0], "split", batch_id)
