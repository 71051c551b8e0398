"""Flow control for extraction sources.

``FlowCounter`` tracks how many records a source has read and how many of
them have been settled (written or failed). A source is drained only once
every read is settled, which is what keeps a run from reporting completion
while loads are still outstanding.

``IntervalTrigger`` fires checkpoint actions every N successful writes of a
source.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ferry.core.logging import get_logger

from .actions import Action, action_name, invoke

logger = get_logger(__name__)


@dataclass
class FlowCounter:
    """Read/write/error counts for one extraction action.

    ``writes <= reads`` always holds. ``settled`` is the parity condition
    ``reads == writes + errors``.
    """

    reads: int = 0
    writes: int = 0
    errors: int = 0
    first_read_at: float | None = None

    def record_read(self) -> int:
        if self.first_read_at is None:
            self.first_read_at = time.monotonic()
        self.reads += 1
        return self.reads

    def record_write(self) -> int:
        self.writes += 1
        return self.writes

    def record_error(self) -> int:
        self.errors += 1
        return self.errors

    @property
    def in_flight(self) -> int:
        """Reads neither written nor failed yet."""
        return self.reads - self.writes - self.errors

    @property
    def settled(self) -> bool:
        return self.in_flight == 0

    def throughput(self, now: float | None = None) -> float | None:
        """Writes per second since the first read."""
        if self.first_read_at is None:
            return None
        elapsed = (now if now is not None else time.monotonic()) - self.first_read_at
        if elapsed <= 0:
            return None
        return self.writes / elapsed

    def to_dict(self) -> dict[str, Any]:
        return {"reads": self.reads, "writes": self.writes, "errors": self.errors}


@dataclass(frozen=True)
class IntervalEntry:
    """Actions to run every ``size`` successful writes."""

    size: int
    actions: Mapping[str, list[Action]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError(f"Interval size must be positive, got {self.size}")

    def due(self, writes: int) -> bool:
        return writes > 0 and writes % self.size == 0


class IntervalTrigger:
    """
    Evaluates interval entries against one source's write count.

    Each source owns its own trigger and counter, so the same entry fires
    independently per source. Entries are evaluated in declaration order
    and their actions run in series.

    Example:
        >>> trigger = IntervalTrigger.from_mapping({100: {"dst": [checkpoint]}})
        >>> [e.size for e in trigger.due(200)]
        [100]
    """

    def __init__(self, entries: Iterable[IntervalEntry] = ()):
        self.entries = list(entries)
        self.fired: dict[int, int] = {entry.size: 0 for entry in self.entries}

    @classmethod
    def from_mapping(cls, interval: Mapping[int, Mapping[str, list[Action]]]) -> IntervalTrigger:
        return cls(IntervalEntry(int(size), actions) for size, actions in interval.items())

    def due(self, writes: int) -> list[IntervalEntry]:
        return [entry for entry in self.entries if entry.due(writes)]

    async def fire(self, writes: int, stores: Mapping[str, Any], registry: Any) -> int:
        """Run every due entry's actions in series; returns how many ran.

        Exceptions propagate to the caller unchanged.
        """
        ran = 0
        for entry in self.due(writes):
            self.fired[entry.size] += 1
            for alias, actions in entry.actions.items():
                for action in actions:
                    logger.debug(
                        "interval.fire",
                        size=entry.size,
                        writes=writes,
                        alias=alias,
                        action=action_name(action),
                    )
                    await invoke(action, stores[alias], registry)
                    ran += 1
        return ran

    def __bool__(self) -> bool:
        return bool(self.entries)


__all__ = ["FlowCounter", "IntervalEntry", "IntervalTrigger"]
