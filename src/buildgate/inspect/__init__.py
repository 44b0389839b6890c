"""Inspection domain: registry, per-run context, and the dispatcher."""

from buildgate.inspect.context import BuildContext, InspectionContext
from buildgate.inspect.dispatcher import RunResult, inspect_builds, run_inspections
from buildgate.inspect.registry import (
    ALL_INSPECTIONS,
    REGISTRY,
    Inspection,
    InspectionMode,
    InspectionSpec,
    get_inspection,
    inspection_names,
    select_inspections,
    selected_specs,
)

__all__ = [
    "ALL_INSPECTIONS",
    "REGISTRY",
    "BuildContext",
    "Inspection",
    "InspectionContext",
    "InspectionMode",
    "InspectionSpec",
    "RunResult",
    "get_inspection",
    "inspect_builds",
    "inspection_names",
    "run_inspections",
    "select_inspections",
    "selected_specs",
]
