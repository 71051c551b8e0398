"""Operation definitions: validation and normalization.

A definition file describes named stores and the lifecycle steps of one or
more operations. This module validates the raw mapping with pydantic and
turns it into :class:`OperationDefinition` objects the executor consumes.

Usage::

    from ferry.framework.definition import build_definition

    definition = build_definition({
        "stores": {"src": {"type": "memory", "name": "a"},
                   "dst": {"type": "memory", "name": "b"}},
        "operation": {"extract": {"src": extract}, "load": {"dst": load}},
    })

Example YAML::

    debug: false
    stores:
      src: {type: pg, host: db.internal, name: app, user: etl}
      dst: {type: sqlite, name: /var/lib/ferry/users.db}
    operation:
      name: users
      init:
        dst: myproject.users:create_table
      extract:
        src: myproject.users:extract
      transform:
        src: [myproject.users:strip, myproject.users:rename]
      load:
        dst: myproject.users:upsert
      interval:
        100:
          dst: myproject.users:checkpoint
      exit:
        dst: myproject.users:record_watermark

Rules:
    - ``stores``, ``extract`` and ``load`` are required
    - ``init``, ``transform``, ``interval`` and ``exit`` default to empty
    - a single action is coerced to a one-element list
    - every alias referenced in any phase must be a key of ``stores``
    - stores inherit ``debug``/``verbose`` from the operation unless set

Manifesto:
    A broken definition must fail before any store connects. All checks
    run here, at construction, and are reported as one ValidationError
    listing every failing location.

Tags:
    ferry, definition, pydantic, declarative, config-driven
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PositiveInt,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from ferry.core.errors import ConfigError, ValidationError
from ferry.stores.registry import store_registry
from ferry.stores.types import StoreConfig

from .actions import Action, resolve_action

# Phase order used for validation messages and alias checks
PHASES = ("init", "extract", "transform", "load", "interval", "exit")


def _action(value: Any) -> Action:
    try:
        return resolve_action(value)
    except TypeError as e:
        raise ValueError(str(e)) from e


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


ActionRef = Annotated[Any, BeforeValidator(_action)]
ActionList = Annotated[list[ActionRef], BeforeValidator(_as_list)]
PhaseMap = dict[str, ActionList]


class OperationSpec(BaseModel):
    """One operation: phases keyed by store alias."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, description="Label used in logs")
    active: bool = Field(default=True, description="Inactive operations are skipped")
    debug: bool | None = None
    verbose: bool | None = None

    init: PhaseMap = Field(default_factory=dict)
    extract: PhaseMap = Field(..., min_length=1)
    transform: PhaseMap = Field(default_factory=dict)
    load: PhaseMap = Field(..., min_length=1)
    interval: dict[PositiveInt, PhaseMap] = Field(default_factory=dict)
    exit: PhaseMap = Field(default_factory=dict)

    def referenced_aliases(self) -> list[tuple[str, str]]:
        """``(phase, alias)`` pairs in phase order."""
        pairs: list[tuple[str, str]] = []
        for phase in PHASES:
            if phase == "interval":
                for size, actions in self.interval.items():
                    pairs.extend((f"interval {size}", alias) for alias in actions)
            else:
                pairs.extend((phase, alias) for alias in getattr(self, phase))
        return pairs


class PipelineSpec(BaseModel):
    """Top-level definition file: stores plus one or more operations.

    ``db`` and ``op`` are accepted as the older spellings of ``stores`` and
    ``operation``.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    debug: bool = False
    verbose: bool = False
    stores: dict[str, StoreConfig] = Field(
        ..., min_length=1, validation_alias=AliasChoices("stores", "db")
    )
    operation: OperationSpec | None = Field(
        default=None, validation_alias=AliasChoices("operation", "op")
    )
    operations: list[OperationSpec] | None = None

    @model_validator(mode="after")
    def _check_references(self) -> PipelineSpec:
        if self.operation is None and not self.operations:
            raise ValueError("operation is required")
        if self.operation is not None and self.operations:
            raise ValueError("Use either operation or operations, not both")

        problems: list[str] = []
        for op in self.all_operations():
            for phase, alias in op.referenced_aliases():
                if alias not in self.stores:
                    problems.append(f"Undefined store for {phase}: {alias}")

        for alias, config in self.stores.items():
            try:
                store_registry.check(config)
            except ConfigError as e:
                problems.append(f"Store {alias}: {e.message}")

        if problems:
            raise ValueError("; ".join(problems))
        return self

    def all_operations(self) -> list[OperationSpec]:
        if self.operation is not None:
            return [self.operation]
        return list(self.operations or [])

    def to_definitions(self, source: str | None = None) -> list[OperationDefinition]:
        """Convert to normalized OperationDefinitions."""
        definitions = []
        for index, op in enumerate(self.all_operations()):
            debug = self.debug if op.debug is None else op.debug
            verbose = self.verbose if op.verbose is None else op.verbose
            definitions.append(
                OperationDefinition(
                    name=op.name or _default_name(source, index, len(self.all_operations())),
                    active=op.active,
                    debug=debug,
                    verbose=verbose,
                    stores={
                        alias: cfg.inherit(debug=debug, verbose=verbose)
                        for alias, cfg in self.stores.items()
                    },
                    init=op.init,
                    extract=op.extract,
                    transform=op.transform,
                    load=op.load,
                    interval=dict(op.interval),
                    exit=op.exit,
                    source=source,
                )
            )
        return definitions


def _default_name(source: str | None, index: int, count: int) -> str:
    base = "operation"
    if source:
        base = source.rsplit("/", 1)[-1].rsplit(".", 1)[0] or base
    return f"{base}[{index}]" if count > 1 else base


@dataclass
class OperationDefinition:
    """Normalized, validated operation.

    Every phase maps alias to an ordered list of resolved callables; every
    alias is a key of ``stores``. Build instances with
    :func:`build_definition` or :func:`build_definitions`.
    """

    name: str
    stores: dict[str, StoreConfig]
    extract: dict[str, list[Action]]
    load: dict[str, list[Action]]
    active: bool = True
    debug: bool = False
    verbose: bool = False
    init: dict[str, list[Action]] = field(default_factory=dict)
    transform: dict[str, list[Action]] = field(default_factory=dict)
    interval: dict[int, dict[str, list[Action]]] = field(default_factory=dict)
    exit: dict[str, list[Action]] = field(default_factory=dict)
    source: str | None = None

    def with_flags(self, *, debug: bool | None = None, verbose: bool | None = None) -> OperationDefinition:
        """Copy with debug/verbose forced on every store (CLI overrides)."""
        debug = self.debug if debug is None else debug
        verbose = self.verbose if verbose is None else verbose
        stores = {
            alias: cfg.model_copy(update={"debug": debug or cfg.debug, "verbose": verbose or cfg.verbose})
            for alias, cfg in self.stores.items()
        }
        return OperationDefinition(
            name=self.name,
            stores=stores,
            extract=self.extract,
            load=self.load,
            active=self.active,
            debug=debug,
            verbose=verbose,
            init=self.init,
            transform=self.transform,
            interval=self.interval,
            exit=self.exit,
            source=self.source,
        )

    def summary(self) -> dict[str, Any]:
        """Shape of the operation without callables, for tables and logs."""
        return {
            "name": self.name,
            "active": self.active,
            "stores": {alias: cfg.type for alias, cfg in self.stores.items()},
            "init": sorted(self.init),
            "extract": sorted(self.extract),
            "transform": sorted(self.transform),
            "load": sorted(self.load),
            "interval": sorted(self.interval),
            "exit": sorted(self.exit),
            "source": self.source,
        }


def format_errors(exc: PydanticValidationError) -> list[str]:
    """One ``"location: message"`` line per pydantic error."""
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        lines.append(f"{loc}: {msg}" if loc else msg)
    return lines


def build_definitions(raw: Mapping[str, Any], source: str | None = None) -> list[OperationDefinition]:
    """Validate a raw definition mapping into one definition per operation.

    Raises:
        ValidationError: If the mapping is malformed.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Definition must be a mapping, got {type(raw).__name__}"
        ).with_context(path=source)
    try:
        spec = PipelineSpec.model_validate(dict(raw))
    except PydanticValidationError as e:
        errors = format_errors(e)
        where = f" in {source}" if source else ""
        raise ValidationError(
            f"Invalid definition{where}: " + "; ".join(errors),
            errors=errors,
            cause=e,
        ).with_context(path=source) from e
    return spec.to_definitions(source)


def build_definition(raw: Mapping[str, Any], source: str | None = None) -> OperationDefinition:
    """Validate a mapping holding exactly one operation."""
    definitions = build_definitions(raw, source)
    if len(definitions) != 1:
        raise ValidationError(
            f"Expected exactly one operation, found {len(definitions)}"
        ).with_context(path=source)
    return definitions[0]


__all__ = [
    "PHASES",
    "OperationSpec",
    "PipelineSpec",
    "OperationDefinition",
    "build_definition",
    "build_definitions",
    "format_errors",
]
