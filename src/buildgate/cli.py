"""buildgate CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from buildgate import __version__
from buildgate.config import ConfigError, RunConfig, load_config
from buildgate.model.build import Build, Side
from buildgate.model.loader import BuildLoadError, load_build
from buildgate.policy.loader import PolicyError, load_policy
from buildgate.policy.rules import PolicyStore
from buildgate.results.ledger import Severity
from buildgate.results.verdict import Outcome, validate_threshold

logger = logging.getLogger(__name__)

_SEVERITY_CHOICES = [s.label for s in Severity if s is not Severity.SKIP]


@click.group()
@click.version_option(version=__version__, prog_name="buildgate")
@click.option("--verbose", "-v", is_flag=True, help="Verbose (debug) logging.")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool) -> None:
    """buildgate - compare two builds and gate a release on policy."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _names(values: tuple[str, ...]) -> tuple[str, ...] | None:
    """Flatten repeated and comma-separated ``-T``/``-E`` values."""
    names = tuple(n.strip() for v in values for n in v.split(",") if n.strip())
    return names or None


def _load_inputs(
    before_path: Path | None,
    after_path: Path,
    policy_path: Path | None,
) -> tuple[PolicyStore, Build | None, Build]:
    policy = load_policy(policy_path) if policy_path is not None else PolicyStore()
    before = load_build(before_path, Side.BEFORE) if before_path is not None else None
    after = load_build(after_path, Side.AFTER)
    return policy, before, after


@main.command()
@click.option(
    "--before",
    "before_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Manifest of the before (previous) build.",
)
@click.option(
    "--after",
    "after_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Manifest of the after (candidate) build.",
)
@click.option(
    "--policy",
    "policy_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Policy YAML file.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File holding the 'settings' section (default: the policy file).",
)
@click.option("--tests", "-T", "tests", multiple=True, help="Inspections to run (comma-separated).")
@click.option("--exclude", "-E", "exclude", multiple=True, help="Inspections to skip.")
@click.option(
    "--threshold",
    type=click.Choice(_SEVERITY_CHOICES, case_sensitive=False),
    default=None,
    help="Lowest severity that fails the run (default: verify).",
)
@click.option(
    "--no-move-detection",
    is_flag=True,
    default=False,
    help="Do not match moved files by checksum.",
)
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=None, help="Worker threads.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option("--show-ok", is_flag=True, default=False, help="Include OK results in rich output.")
def inspect(
    *,
    before_path: Path | None,
    after_path: Path,
    policy_path: Path | None,
    config_path: Path | None,
    tests: tuple[str, ...],
    exclude: tuple[str, ...],
    threshold: str | None,
    no_move_detection: bool,
    jobs: int | None,
    fmt: str | None,
    show_ok: bool,
) -> None:
    """Inspect the after build, comparing it with the before build if given.

    Exit codes: 0 = pass, 1 = fail, 2 = usage/configuration error,
    3 = internal error (all configurable under settings.exit_codes).
    """
    from buildgate.inspect.dispatcher import inspect_builds
    from buildgate.inspect.registry import select_inspections
    from buildgate.report import format_json, format_porcelain, format_rich, render_rich

    codes = RunConfig().exit_codes
    try:
        config = load_config(config_path if config_path is not None else policy_path)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(codes.usage_error)

    codes = config.exit_codes
    try:
        policy, before, after = _load_inputs(before_path, after_path, policy_path)
        config = config.with_overrides(
            threshold=validate_threshold(Severity.parse(threshold)) if threshold else None,
            move_detection=False if no_move_detection else None,
            jobs=jobs,
            inspections=_names(tests),
            exclude=_names(exclude),
        )
        select_inspections(config.inspections, config.exclude)
    except (PolicyError, BuildLoadError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(codes.usage_error)

    try:
        run = inspect_builds(before, after, policy, config)
    except Exception as exc:
        logger.exception("Inspection run failed")
        click.echo(f"Error: {exc}", err=True)
        sys.exit(codes.internal_error)

    outcome = run.outcome(config.threshold)

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"
    if fmt == "json":
        click.echo(format_json(run, outcome, config.threshold))
    elif fmt == "porcelain":
        output = format_porcelain(run)
        if output:
            click.echo(output)
    elif sys.stdout.isatty():
        from rich.console import Console

        render_rich(run, outcome, config.threshold, Console(), show_ok=show_ok)
    else:
        click.echo(format_rich(run, outcome, config.threshold, show_ok=show_ok))

    sys.exit(codes.for_outcome(outcome))


@main.command("list")
@click.option("--verbose", "-v", "details", is_flag=True, help="Show descriptions.")
def list_inspections(*, details: bool) -> None:
    """List registered inspections in run order."""
    from buildgate.inspect.registry import REGISTRY

    for spec in REGISTRY:
        if details:
            click.echo(f"{spec.name:<14} {spec.mode.value:<7} {spec.description}")
        else:
            click.echo(spec.name)


@main.command("check-policy")
@click.argument("policy_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def check_policy(*, policy_path: Path) -> None:
    """Validate a policy file and its settings section."""
    codes = RunConfig().exit_codes
    try:
        config = load_config(policy_path)
        codes = config.exit_codes
        policy = load_policy(policy_path)
    except (PolicyError, ConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(codes.usage_error)

    click.echo(f"Policy OK: {policy_path}")
    click.echo(f"  politics rules:     {len(policy.politics)}")
    click.echo(f"  security rule sets: {len(policy.security)}")
    click.echo(f"  fileinfo entries:   {len(policy.fileinfo)}")
    click.echo(f"  threshold:          {config.threshold.label}")
    click.echo(f"  jobs:               {config.jobs}")
    sys.exit(config.exit_codes.for_outcome(Outcome.PASS))
