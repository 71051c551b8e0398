"""Pipeline scheduler: bounded-concurrency passes on a target period.

Manifesto:
    A pass runs every executor once, at most ``max_concurrency`` at a
    time. One pipeline failing never cancels its siblings; its error is
    logged and recorded in the PassResult. With a period configured the
    scheduler keeps pass *starts* roughly ``period`` apart, net of how
    long the pass took, but never sleeps less than ``min_delay``.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                   PipelineScheduler                      │
        │                                                          │
        │   run() ──► run_pass() ──► semaphore + gather            │
        │     ▲           │            ├── executor.run()          │
        │     │           │            └── executor.close()        │
        │     │           ▼                                        │
        │     │      _complete_pass()  (once per pass)             │
        │     │           │  next_delay = max(period - elapsed,    │
        │     │           │                   min_delay)           │
        │     └── sleep(next_delay) / stop()                       │
        └──────────────────────────────────────────────────────────┘

Example::

    scheduler = PipelineScheduler(executors, max_concurrency=4, period=60)
    await scheduler.run()       # until stop() or max_passes

Tags:
    ferry, scheduling, semaphore, asyncio, period
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ferry.core.errors import FerryError, SchedulerError
from ferry.core.logging import get_logger
from ferry.framework.actions import invoke
from ferry.framework.executor import PipelineExecutor, RunResult, RunStatus

logger = get_logger(__name__)


def compute_delay(period: float, elapsed: float, min_delay: float) -> float:
    """Delay before the next pass: ``max(period - elapsed, min_delay)``.

    Examples:
        >>> compute_delay(60.0, 12.5, 1.0)
        47.5
        >>> compute_delay(60.0, 75.0, 1.0)
        1.0
    """
    return max(period - elapsed, min_delay)


@dataclass
class ScheduleState:
    """Mutable scheduling state, created once per scheduler."""

    period: float | None = None
    min_delay: float = 1.0
    pass_count: int = 0
    pass_started_at: float | None = None  # time.monotonic()
    next_delay: float | None = None


@dataclass
class SchedulerStats:
    """Counters across passes."""

    passes: int = 0
    runs_completed: int = 0
    runs_failed: int = 0
    runs_skipped: int = 0
    close_failures: int = 0
    last_pass_at: datetime | None = None
    last_error: str | None = None


@dataclass
class PassResult:
    """Outcome of one scheduler pass."""

    number: int
    started_at: datetime
    completed_at: datetime | None = None
    runs: list[RunResult] = field(default_factory=list)
    close_errors: list[SchedulerError] = field(default_factory=list)
    elapsed_seconds: float | None = None
    next_delay: float | None = None

    @property
    def failed(self) -> list[RunResult]:
        return [run for run in self.runs if not run.ok]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.close_errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "elapsed_seconds": self.elapsed_seconds,
            "runs": [run.to_dict() for run in self.runs],
            "close_errors": [str(e) for e in self.close_errors],
            "next_delay": self.next_delay,
        }


class PipelineScheduler:
    """
    Runs a set of pipeline executors in passes.

    Args:
        executors: Pipelines to run each pass
        max_concurrency: Pipelines running at once
        period: Target seconds between pass starts; None runs one pass
        min_delay: Floor for the inter-pass delay
        max_passes: Stop after this many passes
        on_pass_complete: Called (and awaited if needed) with each
            PassResult, exactly once per pass
    """

    def __init__(
        self,
        executors: Sequence[PipelineExecutor],
        *,
        max_concurrency: int = 4,
        period: float | None = None,
        min_delay: float = 1.0,
        max_passes: int | None = None,
        on_pass_complete: Callable[[PassResult], Any] | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if period is not None and period <= 0:
            raise ValueError("period must be positive")
        self.executors = list(executors)
        self.max_concurrency = max_concurrency
        self.max_passes = max_passes
        self.on_pass_complete = on_pass_complete
        self.state = ScheduleState(period=period, min_delay=min_delay)
        self._stats = SchedulerStats()
        self._stop_event: asyncio.Event | None = None
        self._stopping = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def stop(self) -> None:
        """End the loop at the next drain, or interrupt the inter-pass sleep."""
        if self._stopping:
            return
        logger.info("scheduler.stopping")
        self._stopping = True
        if self._stop_event is not None:
            self._stop_event.set()

    # ── Passes ───────────────────────────────────────────────────────

    async def run_pass(self) -> PassResult:
        """Run every executor once, bounded by ``max_concurrency``."""
        self.state.pass_count += 1
        self.state.pass_started_at = time.monotonic()
        result = PassResult(number=self.state.pass_count, started_at=datetime.now(UTC))

        logger.info(
            "scheduler.pass_start",
            number=result.number,
            pipelines=len(self.executors),
            max_concurrency=self.max_concurrency,
        )

        sem = asyncio.Semaphore(self.max_concurrency)

        async def _run_one(executor: PipelineExecutor) -> RunResult:
            async with sem:
                return await self._run_executor(executor, result)

        result.runs = list(await asyncio.gather(*(_run_one(e) for e in self.executors)))
        await self._complete_pass(result)
        return result

    async def _run_executor(self, executor: PipelineExecutor, result: PassResult) -> RunResult:
        try:
            run = await executor.run()
        except Exception as e:
            run = RunResult(
                operation=executor.name,
                status=RunStatus.FAILED,
                started_at=datetime.now(UTC),
                completed_at=datetime.now(UTC),
                error=e,
                phase="run",
            )

        if not run.ok:
            error = SchedulerError(
                f"Pipeline {executor.name} failed: {run.error}",
                cause=run.error,
            ).with_context(operation=executor.name, run_id=run.run_id, phase=run.phase)
            logger.error("scheduler.pipeline_failed", **error.to_dict())

        try:
            await executor.close()
        except Exception as e:
            error = SchedulerError(
                f"Pipeline {executor.name} failed to close: {e}", cause=e
            ).with_context(operation=executor.name, phase="close")
            logger.error("scheduler.close_failed", **error.to_dict())
            result.close_errors.append(error)
        return run

    async def _complete_pass(self, result: PassResult) -> None:
        """Drain handling; runs once per pass."""
        if result.completed_at is not None:
            return
        result.completed_at = datetime.now(UTC)
        started = self.state.pass_started_at or time.monotonic()
        result.elapsed_seconds = time.monotonic() - started

        if self.state.period is not None:
            result.next_delay = compute_delay(self.state.period, result.elapsed_seconds, self.state.min_delay)
        self.state.next_delay = result.next_delay

        stats = self._stats
        stats.passes += 1
        stats.last_pass_at = result.completed_at
        stats.close_failures += len(result.close_errors)
        for run in result.runs:
            if run.status == RunStatus.SKIPPED:
                stats.runs_skipped += 1
            elif run.ok:
                stats.runs_completed += 1
            else:
                stats.runs_failed += 1
                stats.last_error = str(run.error)

        logger.info(
            "scheduler.pass_complete",
            number=result.number,
            elapsed_seconds=round(result.elapsed_seconds, 3),
            failed=len(result.failed),
            close_errors=len(result.close_errors),
            next_delay=result.next_delay,
        )
        if self.on_pass_complete is not None:
            try:
                await invoke(self.on_pass_complete, result)
            except Exception as e:
                error = e if isinstance(e, FerryError) else SchedulerError(
                    f"on_pass_complete hook failed: {e}", cause=e
                )
                logger.error("scheduler.hook_failed", **error.to_dict())

    # ── Loop ─────────────────────────────────────────────────────────

    def _should_continue(self) -> bool:
        if self._stopping or self.state.period is None:
            return False
        return self.max_passes is None or self.state.pass_count < self.max_passes

    async def run(self) -> PassResult:
        """Run passes until there is no period, ``stop()`` or ``max_passes``.

        Returns:
            The last PassResult.
        """
        if self._running:
            raise SchedulerError("Scheduler is already running")
        self._running = True
        self._stopping = False
        self._stop_event = asyncio.Event()
        logger.info(
            "scheduler.start",
            pipelines=len(self.executors),
            period=self.state.period,
            min_delay=self.state.min_delay,
        )
        try:
            while True:
                last = await self.run_pass()
                if not self._should_continue():
                    break
                delay = last.next_delay or self.state.min_delay
                logger.debug("scheduler.sleep", seconds=round(delay, 3))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except TimeoutError:
                    continue
                break
        finally:
            self._running = False
            self._stop_event = None
        logger.info("scheduler.stopped", passes=self._stats.passes)
        return last


__all__ = [
    "compute_delay",
    "ScheduleState",
    "SchedulerStats",
    "PassResult",
    "PipelineScheduler",
]
