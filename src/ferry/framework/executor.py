"""Pipeline executor: runs one operation's lifecycle.

Manifesto:
    One executor owns one OperationDefinition and the store handles built
    for it. ``run()`` walks the lifecycle once and returns a RunResult; it
    never raises for pipeline failures, so a scheduler can run many
    executors side by side. ``close()`` is a separate call.

Lifecycle::

    1. inactive?  ──yes──▶ SKIPPED
    2. connect all stores (concurrently) ──fail──▶ FAILED (exit skipped)
    3. init actions (series)   ──fail──┐
    4. extraction loops (concurrent)   │
       ──fail──┐                       │
               ▼                       ▼
    5. exit actions (series, always after step 2 succeeded)
    6. close() all stores (concurrently, separate call)

    Run error = earliest error of steps 2-4; an exit error only when
    steps 2-4 succeeded.

Tags:
    ferry, framework, executor, lifecycle, asyncio
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ferry.core.errors import FerryError, PhaseError, StoreError
from ferry.core.logging import LogContext, get_logger
from ferry.stores.base import StoreAdapter
from ferry.stores.registry import StoreRegistry, store_registry

from .actions import Action, action_name, invoke
from .context import Registry
from .definition import OperationDefinition
from .extraction import ExtractionLoop
from .flow import IntervalTrigger

logger = get_logger(__name__)


class RunStatus(str, Enum):
    """Executor run status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RunResult:
    """Result of one executor run."""

    operation: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    run_id: str | None = None
    error: BaseException | None = None
    phase: str | None = None
    sources: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.SKIPPED)

    @property
    def duration_seconds(self) -> float | None:
        """Duration in seconds if completed."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "run_id": self.run_id,
            "phase": self.phase,
            "error": str(self.error) if self.error is not None else None,
            "duration_seconds": self.duration_seconds,
            "sources": self.sources,
        }


class PipelineExecutor:
    """
    Runs one OperationDefinition against its own store handles.

    Args:
        definition: Validated operation
        registry: Driver registry used to build store handles
        parity_poll_seconds: Parity re-check interval for extraction loops

    Example:
        >>> executor = PipelineExecutor(build_definition(raw))
        >>> result = await executor.run()
        >>> await executor.close()
    """

    def __init__(
        self,
        definition: OperationDefinition,
        *,
        registry: StoreRegistry | None = None,
        parity_poll_seconds: float = 0.1,
    ):
        self.definition = definition
        self.parity_poll_seconds = parity_poll_seconds
        registry = registry or store_registry
        self.stores: dict[str, StoreAdapter] = {
            alias: registry.create(config, alias) for alias, config in definition.stores.items()
        }
        self.last_result: RunResult | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    def __repr__(self) -> str:
        return f"PipelineExecutor(name={self.name!r}, stores={list(self.stores)})"

    # ── Run ──────────────────────────────────────────────────────────

    async def run(self) -> RunResult:
        """Run lifecycle steps 1-5 once. Never raises for pipeline failures."""
        registry = Registry(self.name)
        result = RunResult(
            operation=self.name,
            status=RunStatus.RUNNING,
            started_at=registry.started_at,
            run_id=registry.run_id,
        )
        self.last_result = result

        if not self.definition.active:
            logger.info("executor.inactive", operation=self.name)
            return self._finish(result, RunStatus.SKIPPED)

        async with LogContext(operation=self.name, run_id=registry.run_id):
            logger.info("executor.start", stores=list(self.stores), source=self.definition.source)

            error = await self._connect()
            if error is not None:
                self._fail(result, error, "connect")
                logger.error("executor.connect_failed", **error.to_dict())
                return self._finish(result, RunStatus.FAILED)

            error = await self._run_series("init", self.definition.init, registry)
            if error is not None:
                self._fail(result, error, "init")
            else:
                error = await self._extract(registry, result)
                if error is not None:
                    self._fail(result, error, "extract")

            exit_error = await self._run_series("exit", self.definition.exit, registry)
            if exit_error is not None and result.error is None:
                self._fail(result, exit_error, "exit")

            status = RunStatus.FAILED if result.error is not None else RunStatus.COMPLETED
            self._finish(result, status)
            logger.info(
                "executor.finished",
                status=status.value,
                phase=result.phase,
                duration_seconds=result.duration_seconds,
                sources=result.sources,
            )
            return result

    def _fail(self, result: RunResult, error: BaseException, phase: str) -> None:
        if result.error is None:
            result.error = error
            result.phase = phase
            if isinstance(error, FerryError):
                error.with_context(operation=self.name, run_id=result.run_id)

    def _finish(self, result: RunResult, status: RunStatus) -> RunResult:
        result.status = status
        result.completed_at = datetime.now(UTC)
        return result

    async def _connect(self) -> FerryError | None:
        """Connect every store concurrently; first failure in store order."""
        stores = list(self.stores.values())
        results = await asyncio.gather(*(store.connect() for store in stores), return_exceptions=True)
        for store, outcome in zip(stores, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, FerryError):
                    return outcome
                return StoreError(f"Store {store.alias} failed to connect: {outcome}", cause=outcome)
        for store in stores:
            logger.debug("executor.connected", alias=store.alias, target=store.config.describe())
        return None

    async def _run_series(
        self,
        phase: str,
        actions: dict[str, list[Action]],
        registry: Registry,
    ) -> FerryError | None:
        """Run a phase's actions in alias then list order; stop at first failure."""
        for alias, alias_actions in actions.items():
            for action in alias_actions:
                logger.debug(f"executor.{phase}", alias=alias, action=action_name(action))
                try:
                    await invoke(action, self.stores[alias], registry)
                except Exception as e:
                    if isinstance(e, FerryError):
                        error = e.with_context(phase=phase, alias=alias)
                    else:
                        error = PhaseError(f"{phase.capitalize()} action failed for {alias}: {e}", cause=e)
                        error.with_context(phase=phase, alias=alias, action=action_name(action))
                    logger.error("executor.phase_failed", **error.to_dict())
                    return error
        return None

    def _build_loops(self, registry: Registry) -> list[ExtractionLoop]:
        definition = self.definition
        loads = [(alias, action) for alias, actions in definition.load.items() for action in actions]
        loops = []
        for alias, actions in definition.extract.items():
            for index, action in enumerate(actions):
                loops.append(
                    ExtractionLoop(
                        alias,
                        action,
                        stores=self.stores,
                        registry=registry,
                        transforms=definition.transform.get(alias, []),
                        loads=loads,
                        interval=IntervalTrigger.from_mapping(definition.interval),
                        index=index,
                        poll_seconds=self.parity_poll_seconds,
                        verbose=definition.verbose,
                    )
                )
        return loops

    async def _extract(self, registry: Registry, result: RunResult) -> FerryError | None:
        """Run every extraction loop concurrently; earliest failure wins."""
        loops = self._build_loops(registry)
        await asyncio.gather(*(loop.run() for loop in loops))
        for loop in loops:
            result.sources[loop.label] = loop.counter.to_dict()

        failed = [loop for loop in loops if loop.error is not None]
        if not failed:
            return None
        earliest = min(failed, key=lambda loop: loop.failed_at or 0.0)
        return earliest.error

    # ── Close ────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close every store concurrently.

        Every handle gets its chance; failures are logged and the first one
        is raised afterwards.

        Raises:
            StoreError: If any store failed to close.
        """
        stores = list(self.stores.values())
        results = await asyncio.gather(*(store.close() for store in stores), return_exceptions=True)
        errors: list[StoreError] = []
        for store, outcome in zip(stores, results):
            if not isinstance(outcome, BaseException):
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            error = outcome if isinstance(outcome, StoreError) else StoreError(
                f"Store {store.alias} failed to close: {outcome}", cause=outcome
            )
            error.with_context(operation=self.name, alias=store.alias)
            logger.error("executor.close_failed", **error.to_dict())
            errors.append(error)
        if errors:
            raise errors[0]

    async def __aenter__(self) -> PipelineExecutor:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


__all__ = ["RunStatus", "RunResult", "PipelineExecutor"]
