"""Extraction loop: one extraction action, its records, and their loads.

The engine hands each extraction action a ``process`` callable and lets
the action drive its own reads::

    async def extract(store, registry, process):
        async with contextlib.aclosing(store.stream("SELECT * FROM users")) as rows:
            async for row in rows:
                await process(row)

Calling ``process`` counts the read at once and schedules the record's
work; awaiting what it returns is the per-record backpressure signal. The
awaitable resolves once the record has been transformed, loaded into every
load target and any due interval actions have run. It raises
:class:`RecordError` if any of that failed, and the failure terminates the
whole source. Returning from the action means the source is exhausted;
raising means it failed.

Actions may keep several records in flight (behind an ``asyncio.Semaphore``,
or without awaiting them at all). The loop does not finish until every
read is settled and every scheduled record has finished.

Streams should be wrapped in ``contextlib.aclosing`` as above, so a failed
``process`` releases the driver's cursor and pooled connection right away
instead of when the generator is garbage collected.

Record flow::

    process(record)
        │  falsy record → return
        ▼
    reads += 1   (synchronously, before the first await)
        │
        ▼
    transform[0] → transform[1] → ...        (series)
        │
        ▼
    load[alias0][0] → load[alias0][1] → load[alias1][0] ...   (series)
        │                      │
        │ ok                   │ error → errors += 1, terminate source,
        ▼                      ▼         raise RecordError
    writes += 1
        │
        ▼
    interval entries due at this write count  (series)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any

from ferry.core.errors import FerryError, PhaseError, RecordError
from ferry.core.logging import get_logger
from ferry.stores.base import StoreAdapter

from .actions import Action, action_name, invoke
from .context import Registry
from .flow import FlowCounter, IntervalTrigger

logger = get_logger(__name__)


class ExtractionLoop:
    """
    State of one extraction action during one run.

    Args:
        alias: Store alias the action extracts from
        action: The extraction action
        stores: All store handles of the run, by alias
        registry: The run's registry
        transforms: Transform chain for this source
        loads: ``(alias, action)`` pairs in declaration order
        interval: Interval trigger evaluated after each write
        index: Position of the action within its alias, for labels
        poll_seconds: Parity re-check interval
        verbose: Log throughput after every write
    """

    def __init__(
        self,
        alias: str,
        action: Action,
        *,
        stores: Mapping[str, StoreAdapter],
        registry: Registry,
        transforms: list[Action] | None = None,
        loads: list[tuple[str, Action]] | None = None,
        interval: IntervalTrigger | None = None,
        index: int = 0,
        poll_seconds: float = 0.1,
        verbose: bool = False,
    ):
        self.alias = alias
        self.action = action
        self.stores = stores
        self.store = stores[alias]
        self.registry = registry
        self.transforms = list(transforms or [])
        self.loads = list(loads or [])
        self.interval = interval or IntervalTrigger()
        self.index = index
        self.poll_seconds = poll_seconds
        self.verbose = verbose

        self.counter = FlowCounter()
        self.error: FerryError | None = None
        self.failed_at: float | None = None
        self.finished = False
        self._done = False
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def label(self) -> str:
        return f"{self.alias}[{self.index}]"

    @property
    def is_done(self) -> bool:
        return self._done

    # ── Completion ───────────────────────────────────────────────────

    def done(self, error: FerryError | None = None) -> None:
        """Mark the source exhausted (or failed).

        The first error wins, and a record that fails after a clean
        ``done()`` still fails the source while it drains. Every other
        later call is a no-op.
        """
        if self.finished or self.error is not None:
            return
        if self._done and error is None:
            return
        self._done = True
        if error is not None:
            self.error = error
            self.failed_at = time.monotonic()
            logger.error(
                "extract.failed",
                source=self.label,
                reads=self.counter.reads,
                writes=self.counter.writes,
                **error.to_dict(),
            )

    async def wait_for_parity(self) -> None:
        """Block until every read has been written or has failed."""
        while not self.counter.settled or self._pending:
            logger.debug(
                "extract.waiting_for_parity",
                source=self.label,
                in_flight=self.counter.in_flight,
                pending=len(self._pending),
            )
            await asyncio.sleep(self.poll_seconds)

    # ── Records ──────────────────────────────────────────────────────

    def process(self, record: Any) -> asyncio.Future[None]:
        """Count one read and schedule its transforms and loads.

        Returns an awaitable that resolves once the record is settled; see
        the module docstring.
        """
        if not record:
            skipped: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            skipped.set_result(None)
            return skipped
        if self._done:
            if self.error is not None:
                raise self.error
            raise RecordError(
                f"Source {self.label} already finished; record not processed"
            ).with_context(alias=self.alias, phase="extract")

        self.counter.record_read()
        task = asyncio.ensure_future(self._handle(record))
        self._pending.add(task)
        task.add_done_callback(self._settle)
        return task

    def _settle(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        # Failures are recorded through done(); mark them retrieved
        if not task.cancelled():
            task.exception()

    async def _handle(self, record: Any) -> None:
        phase, alias, current = "transform", self.alias, None
        aborted = False
        try:
            data = record
            for transform in self.transforms:
                current = transform
                data = await invoke(transform, self.store, self.registry, data)

            phase = "load"
            for alias, load in self.loads:
                if self.error is not None:
                    # Another record already failed this source
                    aborted = True
                    break
                current = load
                await invoke(load, self.stores[alias], self.registry, data)
        except RecordError as e:
            self.counter.record_error()
            self.done(e)
            raise
        except Exception as e:
            self.counter.record_error()
            error = RecordError(
                f"{phase.capitalize()} failed for record from {self.alias}: {e}", cause=e
            ).with_context(
                alias=alias,
                phase=phase,
                action=action_name(current) if current is not None else None,
                reads=self.counter.reads,
                writes=self.counter.writes,
            )
            self.done(error)
            raise error from e

        if aborted:
            self.counter.record_error()
            raise self.error

        writes = self.counter.record_write()
        if self.verbose:
            rate = self.counter.throughput()
            logger.info(
                "extract.throughput",
                source=self.label,
                reads=self.counter.reads,
                writes=writes,
                records_per_second=round(rate, 2) if rate is not None else None,
            )

        if self.interval:
            try:
                await self.interval.fire(writes, self.stores, self.registry)
            except Exception as e:
                error = RecordError(
                    f"Interval action failed at {writes} writes from {self.alias}: {e}", cause=e
                ).with_context(alias=self.alias, phase="interval", writes=writes)
                self.done(error)
                raise error from e

    # ── Driver ───────────────────────────────────────────────────────

    async def run(self) -> FerryError | None:
        """Run the extraction action to completion and wait for parity.

        Returns:
            The error that terminated the source, or None.
        """
        logger.debug("extract.start", source=self.label, action=action_name(self.action))
        try:
            await invoke(self.action, self.store, self.registry, self.process)
        except FerryError as e:
            self.done(e)
        except Exception as e:
            self.done(
                PhaseError(f"Extraction from {self.alias} failed: {e}", cause=e).with_context(
                    alias=self.alias, phase="extract", action=action_name(self.action)
                )
            )
        else:
            self.done()

        await self.wait_for_parity()
        self.finished = True
        logger.info(
            "extract.drained",
            source=self.label,
            failed=self.error is not None,
            **self.counter.to_dict(),
        )
        return self.error


__all__ = ["ExtractionLoop"]
