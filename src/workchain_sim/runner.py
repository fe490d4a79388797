"""Simulation runner for workchain-sim.

This module plays the execution side: it takes dispatched work, runs it
with fake latency, reports the outcome back to the store and unblocks
whatever was waiting. It updates a SimulationState object that the display
renders afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import workchain
from workchain import WorkItem, WorkState

if TYPE_CHECKING:
    from workchain_sim.display import SimulationState

logger = logging.getLogger(__name__)


@dataclass
class SimConfig:
    """Configuration for a simulation run."""

    scenario: str = "chain"
    count: int = 5
    latency_ms: int = 20
    latency_jitter: float = 0.2  # ±20% variance
    error_rate: float = 0.0
    max_concurrent: int = 3
    policy: str = "keep"  # Conflict policy for the unique scenario
    db_path: str = ":memory:"


class SimulationRunner:
    """Runs a scenario and a toy executor against one WorkChain.

    Usage:
        config = SimConfig(scenario="fanout", count=3)
        state = SimulationState()
        runner = SimulationRunner(config, state)
        await runner.run()
    """

    def __init__(
        self,
        config: SimConfig,
        state: "SimulationState",
        on_event: Callable[[str, str, str | None, str], None] | None = None,
    ):
        self.config = config
        self.state = state
        self.on_event = on_event or state.add_event

        self._chain: workchain.WorkChain | None = None
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue()

    async def run(self) -> None:
        """Submit the scenario's workload and run it to completion."""
        from workchain_sim.scenarios import get_scenario

        scenario = get_scenario(self.config.scenario)
        self.state.scenario_name = scenario.info.name
        self.state.start_time = time.time()

        dispatcher = workchain.CallbackDispatcher(self._on_ready, on_cancel=self._on_cancel)
        self._chain = workchain.WorkChain(self.config.db_path, dispatcher=dispatcher)
        await self._chain.open()

        try:
            await scenario.submit_workload(self._chain, self.config, self.state)
            await self._drain()
            await self._update_state()
        finally:
            await self.cleanup()

    def _on_ready(self, work: WorkItem) -> None:
        self.on_event("dispatched", work.id, work.task, "")
        self._queue.put_nowait(work)

    def _on_cancel(self, work_id: str) -> None:
        self.on_event("cancelled", work_id, None, "")

    async def _drain(self) -> None:
        """Run workers until nothing is left to dispatch."""
        workers = [
            asyncio.create_task(self._worker())
            for _ in range(max(1, self.config.max_concurrent))
        ]
        try:
            await self._queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self) -> None:
        while True:
            work = await self._queue.get()
            try:
                await self._execute(work)
            except workchain.WorkchainError:
                logger.exception("Could not run %s", work.id)
            finally:
                self._queue.task_done()

    async def _execute(self, work: WorkItem) -> None:
        """Run one dispatched item through RUNNING to a finished state."""
        stored = await self._chain.get(work.id)
        # Replaced or cancelled after it was dispatched
        if stored is None or stored.state is not WorkState.ENQUEUED:
            return

        await self._chain.set_state(work.id, WorkState.RUNNING)
        self.on_event("started", work.id, work.task, "")
        started = time.time()

        base_latency = self.config.latency_ms / 1000.0
        if base_latency > 0:
            jitter = self.config.latency_jitter
            await asyncio.sleep(base_latency * random.uniform(1 - jitter, 1 + jitter))

        duration_ms = int((time.time() - started) * 1000)
        if random.random() < self.config.error_rate:
            await self._chain.set_state(work.id, WorkState.FAILED)
            self.on_event("failed", work.id, work.task, "Simulated error")
            # Nothing downstream can run now
            await self._chain.cancel(work.id)
            return

        await self._chain.set_state(work.id, WorkState.SUCCEEDED)
        self.on_event("completed", work.id, work.task, f"{duration_ms}ms")
        for released in await self._chain.unblock_dependents(work.id):
            self.on_event("unblocked", released.id, released.task, f"after {work.task}")

    async def _update_state(self) -> None:
        """Copy final counts out of the store."""
        self.state.elapsed = time.time() - self.state.start_time
        for state in WorkState:
            items = await self._chain.list(state=state, limit=1_000_000)
            self.state.counts[state.value] = len(items)

    async def cleanup(self) -> None:
        """Close the store. Safe to call twice."""
        if self._chain:
            await self._chain.close()
            self._chain = None
