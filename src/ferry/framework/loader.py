"""Definition file loading and discovery.

Supported formats:
    ``.py``           imported; module attributes ``stores`` (or ``db``),
                      ``operation`` (or ``op``), ``operations``, ``debug``,
                      ``verbose`` form the definition
    ``.yaml``/``.yml`` parsed with ``yaml.safe_load``
    ``.json``         parsed with ``json``

Directories are walked recursively in sorted order. Hidden entries (name
starting with ``.``) are skipped, as are names starting with ``_`` so
helper modules such as ``_shared.py`` or ``__init__.py`` can live next to
the definitions that import them.

Every file is validated before anything is returned, so one broken file
aborts the whole set before any store connects.
"""

from __future__ import annotations

import hashlib
import importlib.util
import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from ferry.core.errors import ConfigError
from ferry.core.logging import get_logger

from .definition import OperationDefinition, build_definitions
from .executor import PipelineExecutor

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".py", ".yaml", ".yml", ".json")

# Module attributes read from Python definition files
MODULE_KEYS = ("stores", "db", "operation", "op", "operations", "debug", "verbose")


def _skipped(path: Path) -> bool:
    return path.name.startswith((".", "_"))


def discover(path: str | Path) -> list[Path]:
    """Definition files under ``path`` (or ``path`` itself if a file).

    Raises:
        ConfigError: If ``path`` does not exist.
    """
    root = Path(path)
    if not root.exists():
        raise ConfigError(f"Definition path does not exist: {root}").with_context(path=str(root))
    if root.is_file():
        return [root]

    found: list[Path] = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if _skipped(entry):
            continue
        if entry.is_dir():
            found.extend(discover(entry))
        elif entry.suffix.lower() in SUPPORTED_SUFFIXES:
            found.append(entry)
    return found


def _load_module(path: Path) -> dict[str, Any]:
    digest = hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:8]
    module_name = f"ferry_definition_{path.stem}_{digest}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Cannot import definition module: {path}").with_context(path=str(path))
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise ConfigError(f"Failed to import {path}: {e}", cause=e).with_context(path=str(path)) from e
    return {key: getattr(module, key) for key in MODULE_KEYS if hasattr(module, key)}


def read_definition_file(path: str | Path) -> Any:
    """Raw definition content of one file."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".py":
        return _load_module(path)
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigError(f"Unsupported definition file type: {path}").with_context(path=str(path))

    try:
        text = path.read_text(encoding="utf-8")
        if suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}", cause=e).with_context(path=str(path)) from e


def load_definitions(paths: Iterable[str | Path]) -> list[OperationDefinition]:
    """Discover and validate every definition under ``paths``.

    Raises:
        ConfigError: Missing path or unreadable file.
        ValidationError: Malformed definition.
    """
    definitions: list[OperationDefinition] = []
    for path in paths:
        for file in discover(path):
            raw = read_definition_file(file)
            loaded = build_definitions(raw, source=str(file))
            logger.debug("loader.file_loaded", path=str(file), operations=[d.name for d in loaded])
            definitions.extend(loaded)
    logger.info("loader.loaded", operations=len(definitions))
    return definitions


def load_pipelines(
    paths: Iterable[str | Path],
    *,
    debug: bool | None = None,
    verbose: bool | None = None,
    parity_poll_seconds: float = 0.1,
) -> list[PipelineExecutor]:
    """Load definitions and build one executor per operation.

    ``debug``/``verbose`` force the flag on every operation when set.
    """
    definitions = load_definitions(paths)
    if debug or verbose:
        definitions = [d.with_flags(debug=debug or None, verbose=verbose or None) for d in definitions]
    return [PipelineExecutor(d, parity_poll_seconds=parity_poll_seconds) for d in definitions]


__all__ = [
    "SUPPORTED_SUFFIXES",
    "discover",
    "read_definition_file",
    "load_definitions",
    "load_pipelines",
]
