#!/usr/bin/env python3
"""
workchain-sim: Simulator for dependent work chains.

Usage:
    workchain-sim --scenario chain --count 5
    workchain-sim --scenario fanout --count 3 --error-rate 0.1
    workchain-sim --scenario unique --count 4 --policy replace --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys

from workchain import ExistingWorkPolicy
from workchain_sim.display import SimulationState, format_event, print_summary
from workchain_sim.runner import SimConfig, SimulationRunner
from workchain_sim.scenarios import SCENARIOS, list_scenarios


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the simulator."""
    workchain_logger = logging.getLogger("workchain")
    if verbose:
        workchain_logger.setLevel(logging.DEBUG)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        workchain_logger.addHandler(handler)
    else:
        # Silence library logs - simulator handles its own display
        workchain_logger.setLevel(logging.CRITICAL)


async def run_simulation(config: SimConfig, verbose: bool = False) -> SimulationState:
    """Run one simulation and return its final state.

    Args:
        config: Simulation configuration
        verbose: Print each event as it happens
    """
    state = SimulationState()

    if verbose:
        original_add_event = state.add_event

        def printing_add_event(event_type: str, work_id: str, task_type: str | None = None, details: str = "") -> None:
            original_add_event(event_type, work_id, task_type, details)
            print(format_event(state.events[0]))

        state.add_event = printing_add_event  # type: ignore

    runner = SimulationRunner(config, state)
    await runner.run()
    return state


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="workchain-sim",
        description="Enqueue dependent work chains and watch them run",
    )
    parser.add_argument(
        "--scenario", "-s",
        choices=sorted(SCENARIOS),
        default="chain",
        help="Workload shape (default: chain)",
    )
    parser.add_argument(
        "--list-scenarios",
        action="store_true",
        help="List available scenarios and exit",
    )
    parser.add_argument(
        "--count", "-n",
        type=int,
        default=5,
        help="Number of chains to enqueue (default: 5)",
    )
    parser.add_argument(
        "--latency", "-l",
        type=int,
        default=20,
        help="Base latency per work item in ms (default: 20)",
    )
    parser.add_argument(
        "--concurrent", "-c",
        type=int,
        default=3,
        help="Number of simulated workers (default: 3)",
    )
    parser.add_argument(
        "--error-rate", "-e",
        type=float,
        default=0.0,
        help="Probability of work failure, 0.0-1.0 (default: 0.0)",
    )
    parser.add_argument(
        "--policy", "-p",
        choices=[policy.value for policy in ExistingWorkPolicy],
        default="keep",
        help="Conflict policy for the unique scenario (default: keep)",
    )
    parser.add_argument(
        "--db",
        default=":memory:",
        help="SQLite file to persist work in (default: in-memory)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible behavior (default: random)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print events and library logs as they happen",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = parse_args(argv)

    if args.list_scenarios:
        print("\nAvailable scenarios:\n")
        for info in list_scenarios():
            print(f"  {info.name:<15} {info.description}")
        print()
        sys.exit(0)

    configure_logging(verbose=args.verbose)

    if args.seed is not None:
        random.seed(args.seed)

    config = SimConfig(
        scenario=args.scenario,
        count=args.count,
        latency_ms=args.latency,
        error_rate=args.error_rate,
        max_concurrent=args.concurrent,
        policy=args.policy,
        db_path=args.db,
    )

    try:
        state = asyncio.run(run_simulation(config, verbose=args.verbose))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)

    print_summary(state)


if __name__ == "__main__":
    main()
