#!/usr/bin/env python3
"""Run once - Load a definition directory and run a single scheduler pass.

This example loads every definition under ``examples/definitions``,
runs one pass and prints the per-source counters.

Run: python examples/01_run_once.py
"""
import asyncio
from pathlib import Path

from ferry.core.logging import configure_logging
from ferry.framework import load_pipelines
from ferry.scheduling import PipelineScheduler

DEFINITIONS = Path(__file__).parent / "definitions"


async def main():
    print("=" * 60)
    print("Run once")
    print("=" * 60)

    # === 1. Load and validate ===
    print("\n[1] Load definitions")
    executors = load_pipelines([DEFINITIONS])
    for executor in executors:
        print(f"  {executor.name}: stores={list(executor.stores)}")

    # === 2. One pass ===
    print("\n[2] Run one pass")
    result = await PipelineScheduler(executors).run()
    for run in result.runs:
        print(f"  {run.operation}: {run.status.value} in {run.duration_seconds:.3f}s")
        for label, counters in run.sources.items():
            print(f"    {label}: {counters}")

    print("\n" + "=" * 60)
    print("[OK] Pass complete" if result.ok else "[FAILED] See errors above")


if __name__ == "__main__":
    configure_logging(level="WARNING", json_format=False)
    asyncio.run(main())
