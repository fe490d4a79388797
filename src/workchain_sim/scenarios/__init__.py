"""Built-in scenarios for workchain-sim.

Scenarios define workload shapes - chains, fan-out/fan-in, unique names.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import workchain
    from workchain_sim.display import SimulationState
    from workchain_sim.runner import SimConfig


@dataclass
class ScenarioInfo:
    """Metadata about a scenario."""
    name: str
    description: str


class Scenario(ABC):
    """Base class for simulation scenarios.

    A scenario builds continuations and enqueues them. The runner's executor
    takes it from there.
    """

    @property
    @abstractmethod
    def info(self) -> ScenarioInfo:
        """Return scenario metadata."""
        ...

    @abstractmethod
    async def submit_workload(
        self, chain: "workchain.WorkChain", config: "SimConfig", state: "SimulationState"
    ) -> None:
        """Enqueue the workload.

        Args:
            chain: The WorkChain to enqueue into
            config: Simulation configuration
            state: State object to update
        """
        ...


# Import built-in scenarios
from workchain_sim.scenarios.chain import ChainScenario
from workchain_sim.scenarios.fanout import FanoutScenario
from workchain_sim.scenarios.unique import UniqueScenario

# Registry of built-in scenarios
SCENARIOS: dict[str, type[Scenario]] = {
    "chain": ChainScenario,
    "fanout": FanoutScenario,
    "unique": UniqueScenario,
}


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in SCENARIOS:
        available = ", ".join(SCENARIOS.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    return SCENARIOS[name]()


def list_scenarios() -> list[ScenarioInfo]:
    """List all available scenarios."""
    return [cls().info for cls in SCENARIOS.values()]
