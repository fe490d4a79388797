"""Unique scenario - the same named chain enqueued again and again.

With ``keep`` only the first chain survives while it is live, with
``replace`` each new chain supersedes the last, and with ``append`` every
chain is kept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from workchain import WorkItem
from workchain_sim.scenarios import Scenario, ScenarioInfo

if TYPE_CHECKING:
    import workchain
    from workchain_sim.display import SimulationState
    from workchain_sim.runner import SimConfig


class UniqueScenario(Scenario):
    """Repeated sync chains under one unique name."""

    NAME = "nightly-sync"

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="unique",
            description="One unique name, enqueued repeatedly (see --policy)",
        )

    async def submit_workload(
        self, chain: "workchain.WorkChain", config: "SimConfig", state: "SimulationState"
    ) -> None:
        for i in range(config.count):
            sync = WorkItem.create("sync", params={"run": i})
            node = chain.begin_unique(self.NAME, config.policy, sync)
            node = node.then(WorkItem.create("report", params={"run": i}))

            await chain.enqueue(node)
            state.chains += 1
            state.submitted += 2
            if await chain.get(sync.id) is None:
                state.add_event("skipped", sync.id, "sync", f"run {i} kept out by {self.NAME}")
            else:
                state.add_event("queued", sync.id, "sync", f"run {i} ({config.policy})")
