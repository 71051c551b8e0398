"""Per-run registry shared by every action of one run."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any


class Registry(dict):
    """
    Mutable mapping created fresh for each run and passed by reference to
    every init, extract, transform, load, interval and exit action.

    Actions use it to carry state across phases (a watermark read in init
    and written back in exit, a run-start time, counters). The engine never
    persists it and never locks it.

    Attributes:
        run_id: Short unique id of the run, also bound into log context
        operation: Name of the operation being run
        started_at: UTC time the registry was created

    Example:
        >>> registry = Registry("users", watermark=0)
        >>> registry["watermark"]
        0
    """

    def __init__(self, operation: str | None = None, **initial: Any):
        super().__init__(**initial)
        self.run_id = uuid.uuid4().hex[:12]
        self.operation = operation
        self.started_at = datetime.now(UTC)

    def __repr__(self) -> str:
        return f"Registry(operation={self.operation!r}, run_id={self.run_id!r}, {dict.__repr__(self)})"


__all__ = ["Registry"]
