#!/usr/bin/env python3
"""
Nightly Report

Builds a small report pipeline per region, joins the regions into one
summary, and runs it with a tiny in-process executor. Work lives in a SQLite
file, so running the script twice shows the unique-name policy and the
restart rescan at work.

Demonstrates:
- Chains (fetch -> clean) and fan-in (all regions -> summary)
- A unique name with REPLACE_EXISTING so only the latest run stays live
- Unblocking dependents as work succeeds
- reschedule_pending() after a restart
"""

import asyncio
import json
import logging
from pathlib import Path

import workchain
from workchain import Continuation, WorkItem, WorkState

OUTPUT_DIR = Path("output")
DB_PATH = OUTPUT_DIR / "nightly.db"
REGIONS = ["emea", "apac", "amer"]


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    OUTPUT_DIR.mkdir(exist_ok=True)

    queue: asyncio.Queue[WorkItem] = asyncio.Queue()
    dispatcher = workchain.CallbackDispatcher(queue.put_nowait)

    async with workchain.WorkChain(str(DB_PATH), dispatcher=dispatcher) as wc:
        # Anything left over from a previous run that never got dispatched
        leftovers = await wc.reschedule_pending()
        if leftovers:
            print(f"  Picked up {len(leftovers)} item(s) from the last run")

        # One chain per region, all joined into a summary
        start = wc.begin_unique(
            "nightly-report",
            workchain.ExistingWorkPolicy.REPLACE_EXISTING,
            WorkItem.create("prepare"),
        )
        regions = [
            start.then(WorkItem.create("fetch", params={"region": region}))
                 .then(WorkItem.create("clean", params={"region": region}))
            for region in REGIONS
        ]
        summary = Continuation.combine(*regions, items=[WorkItem.create("summarize")])

        ready = await wc.enqueue(summary)
        print(f"  Enqueued {len(await wc.list(limit=1000))} item(s), {len(ready)} ready")

        results: dict[str, list] = {}
        while not queue.empty():
            work = queue.get_nowait()
            stored = await wc.get(work.id)
            # Replaced by a newer run
            if stored is None or stored.state is not WorkState.ENQUEUED:
                continue

            await wc.set_state(work.id, WorkState.RUNNING)
            region = work.params.get("region")
            if work.task == "clean":
                results.setdefault("regions", []).append(region)
            print(f"  ✓ {work.task:<10} {region or ''}")
            await wc.set_state(work.id, WorkState.SUCCEEDED)
            await wc.unblock_dependents(work.id)

        report = OUTPUT_DIR / "report.json"
        report.write_text(json.dumps(results, indent=2))
        print(f"\n  Report: {report}")


if __name__ == "__main__":
    asyncio.run(main())
