"""Action references and invocation.

An action is any callable taking ``(store, registry, ...)``. It may be a
plain function or a coroutine function; ``invoke`` awaits the result when
it is awaitable, so definition authors pick whichever fits the driver they
talk to.

Definition files that cannot hold Python objects (YAML, JSON) reference
actions by import string::

    extract:
      src: myproject.users:extract
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable
from typing import Any

Action = Callable[..., Any]


def resolve_action(ref: Any) -> Action:
    """Return ``ref`` if callable, else import the callable it names.

    Accepts ``'package.module:qualname'`` and ``'package.module.name'``.

    Raises:
        ValueError: If the reference is not a string or callable, or cannot
            be imported.
        TypeError: If the reference resolves to a non-callable.
    """
    if callable(ref):
        return ref
    if not isinstance(ref, str) or not ref.strip():
        raise ValueError(f"Action must be a callable or import string, got {type(ref).__name__}")

    ref = ref.strip()
    if ":" in ref:
        module_path, _, attr_path = ref.partition(":")
    else:
        module_path, _, attr_path = ref.rpartition(".")
    if not module_path or not attr_path:
        raise ValueError(f"Invalid action reference: {ref!r}")

    try:
        obj: Any = importlib.import_module(module_path)
        for part in attr_path.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot import action {ref!r}: {e}") from e

    if not callable(obj):
        raise TypeError(f"{ref!r} resolved to non-callable: {type(obj).__name__}")
    return obj


def action_name(action: Action) -> str:
    """Qualified name for log lines."""
    module = getattr(action, "__module__", None) or ""
    name = getattr(action, "__qualname__", None) or getattr(action, "__name__", None) or repr(action)
    return f"{module}.{name}" if module else name


async def invoke(action: Action, *args: Any) -> Any:
    """Call an action and await its result if needed."""
    result = action(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


__all__ = ["Action", "resolve_action", "action_name", "invoke"]
