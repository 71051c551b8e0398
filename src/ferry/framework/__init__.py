"""Operation engine: definitions, executor, extraction flow control, loader."""

from ferry.framework.actions import Action, invoke, resolve_action
from ferry.framework.context import Registry
from ferry.framework.definition import (
    OperationDefinition,
    OperationSpec,
    PipelineSpec,
    build_definition,
    build_definitions,
)
from ferry.framework.executor import PipelineExecutor, RunResult, RunStatus
from ferry.framework.extraction import ExtractionLoop
from ferry.framework.flow import FlowCounter, IntervalEntry, IntervalTrigger
from ferry.framework.loader import discover, load_definitions, load_pipelines

__all__ = [
    "Action",
    "invoke",
    "resolve_action",
    "Registry",
    "OperationDefinition",
    "OperationSpec",
    "PipelineSpec",
    "build_definition",
    "build_definitions",
    "PipelineExecutor",
    "RunResult",
    "RunStatus",
    "ExtractionLoop",
    "FlowCounter",
    "IntervalEntry",
    "IntervalTrigger",
    "discover",
    "load_definitions",
    "load_pipelines",
]
