"""Chain scenario - extract → transform → load, one chain per item.

Only the extract step is dispatched at enqueue time; the later steps start
BLOCKED and are released as their parents succeed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from workchain import WorkItem
from workchain_sim.scenarios import Scenario, ScenarioInfo

if TYPE_CHECKING:
    import workchain
    from workchain_sim.display import SimulationState
    from workchain_sim.runner import SimConfig


class ChainScenario(Scenario):
    """Linear three-step pipelines."""

    STEPS = ("extract", "transform", "load")

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="chain",
            description="Extract → Transform → Load chains",
        )

    async def submit_workload(
        self, chain: "workchain.WorkChain", config: "SimConfig", state: "SimulationState"
    ) -> None:
        for i in range(config.count):
            target = f"item_{i:04d}"
            first, *rest = [
                WorkItem.create(step, params={"target": target}, tags={"pipeline"})
                for step in self.STEPS
            ]
            node = chain.begin_with(first)
            for item in rest:
                node = node.then(item)

            ready = await chain.enqueue(node)
            state.chains += 1
            state.submitted += len(self.STEPS)
            state.add_event("queued", first.id, first.task, f"{target} ({len(ready)} ready)")
