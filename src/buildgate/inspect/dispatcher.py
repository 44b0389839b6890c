"""Dispatcher: run the selected inspections and collect their results."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildgate.inspect.context import BuildContext, InspectionContext
from buildgate.inspect.registry import (
    REGISTRY,
    InspectionMode,
    InspectionSpec,
    select_inspections,
    selected_specs,
)
from buildgate.results.ledger import ResultParams, Results, Severity, Verb, WaiverAuth
from buildgate.results.verdict import Outcome, verdict

if TYPE_CHECKING:
    from buildgate.config import RunConfig
    from buildgate.inspect.registry import Inspection
    from buildgate.model.build import Build
    from buildgate.policy.rules import PolicyStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    """Result of one dispatcher run."""

    results: Results = field(default_factory=Results)
    ran: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    passed: dict[str, bool] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    @property
    def worst(self) -> Severity:
        return self.results.worst()

    def outcome(self, threshold: Severity) -> Outcome:
        return verdict(self.worst, threshold)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _skip_diagnostic(spec: InspectionSpec, origin: int, results: Results) -> None:
    results.add(
        ResultParams(
            severity=Severity.INFO,
            waiverauth=WaiverAuth.NOT_WAIVABLE,
            header=spec.name,
            msg=f"Inspection {spec.name} needs a before build and was not run",
            verb=Verb.FAILED,
            noun=spec.name,
        ),
        origin=origin,
    )


def run_inspections(
    selected: Inspection,
    build: BuildContext,
    policy: PolicyStore,
    config: RunConfig,
) -> RunResult:
    """Run every selected inspection in registration order.

    Diff-mode inspections are not invoked when there is no before build;
    each gets an INFO diagnostic instead.  With ``config.jobs > 1`` the
    inspections run on a thread pool; use
    ``Results.in_registration_order()`` for a stable report order.
    """
    start = time.monotonic()
    run = RunResult()
    origins = {spec.name: origin for origin, spec in enumerate(REGISTRY)}

    runnable: list[tuple[int, InspectionSpec]] = []
    for spec in selected_specs(selected):
        origin = origins[spec.name]
        if spec.mode is InspectionMode.DIFF and build.before is None:
            logger.info("Skipping %s: no before build", spec.name)
            _skip_diagnostic(spec, origin, run.results)
            run.skipped.append(spec.name)
            continue
        runnable.append((origin, spec))

    def _run_one(origin: int, spec: InspectionSpec) -> bool:
        ctx = InspectionContext(
            name=spec.name,
            origin=origin,
            build=build,
            policy=policy,
            config=config,
            results=run.results,
        )
        logger.debug("Running %s", spec.name)
        return spec.run(ctx)

    if config.jobs > 1 and len(runnable) > 1:
        logger.info("Running %d inspections on %d workers", len(runnable), config.jobs)
        with ThreadPoolExecutor(max_workers=config.jobs) as pool:
            futures = [(spec, pool.submit(_run_one, origin, spec)) for origin, spec in runnable]
            for spec, future in futures:
                run.passed[spec.name] = future.result()
                run.ran.append(spec.name)
    else:
        for origin, spec in runnable:
            run.passed[spec.name] = _run_one(origin, spec)
            run.ran.append(spec.name)

    run.elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "Ran %d inspections (%d skipped), worst severity %s",
        len(run.ran),
        len(run.skipped),
        run.worst.label,
    )
    return run


def inspect_builds(
    before: Build | None,
    after: Build,
    policy: PolicyStore,
    config: RunConfig,
) -> RunResult:
    """Open a build context, run the configured inspections, and close it."""
    selected = select_inspections(config.inspections, config.exclude)
    with BuildContext.open(before, after, move_detection=config.move_detection) as build:
        return run_inspections(selected, build, policy, config)
