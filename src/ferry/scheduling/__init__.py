"""Scheduler: run pipeline executors in bounded-concurrency passes."""

from ferry.scheduling.scheduler import (
    PassResult,
    PipelineScheduler,
    SchedulerStats,
    ScheduleState,
    compute_delay,
)

__all__ = [
    "PassResult",
    "PipelineScheduler",
    "SchedulerStats",
    "ScheduleState",
    "compute_delay",
]
