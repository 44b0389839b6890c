"""Formatters for dispatcher results: rich text, JSON, and porcelain."""

from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

from buildgate.results.ledger import Severity

if TYPE_CHECKING:
    from buildgate.inspect.dispatcher import RunResult
    from buildgate.results.ledger import Result
    from buildgate.results.verdict import Outcome

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.OK: "green",
    Severity.INFO: "cyan",
    Severity.VERIFY: "yellow",
    Severity.BAD: "bold red",
    Severity.SKIP: "dim",
}


def _findings(run: RunResult, *, show_ok: bool) -> list[Result]:
    return [
        r
        for r in run.results.in_registration_order()
        if r.reportable and (show_ok or r.severity is not Severity.OK)
    ]


# ---------------------------------------------------------------------------
# Rich
# ---------------------------------------------------------------------------


def render_rich(
    run: RunResult,
    outcome: Outcome,
    threshold: Severity,
    console: Console,
    *,
    show_ok: bool = False,
) -> None:
    """Print a results table and the verdict line to *console*."""
    findings = _findings(run, show_ok=show_ok)
    if findings:
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("Inspection")
        table.add_column("Result")
        table.add_column("Waiver")
        table.add_column("Message", overflow="fold")
        for r in findings:
            message = Text(r.msg or "")
            if r.details:
                message.append(f"\n{r.details}", style="dim")
            if r.remedy:
                message.append(f"\nRemedy: {r.remedy}", style="italic")
            table.add_row(
                r.header,
                Text(r.severity.label.upper(), style=_SEVERITY_STYLES[r.severity]),
                r.waiverauth.value,
                message,
            )
        console.print(table)
        console.print()

    counts = run.results.counts()
    summary = ", ".join(
        f"{counts[s]} {s.label}" for s in (Severity.BAD, Severity.VERIFY, Severity.INFO) if counts[s]
    )
    style = "green" if outcome.value == "pass" else "bold red"
    console.print(
        Text.assemble(
            (f"{outcome.value.upper()}", style),
            f"  worst={run.worst.label} threshold={threshold.label}",
            f"  ({len(run.ran)} inspections run, {len(run.skipped)} skipped"
            + (f"; {summary}" if summary else "")
            + f", {run.elapsed_ms / 1000:.1f}s)",
        )
    )


def format_rich(
    run: RunResult, outcome: Outcome, threshold: Severity, *, show_ok: bool = False
) -> str:
    """Render the rich report to a plain string (no terminal styling)."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None, force_terminal=False)
    render_rich(run, outcome, threshold, console, show_ok=show_ok)
    return buffer.getvalue().rstrip()


# ---------------------------------------------------------------------------
# JSON and porcelain
# ---------------------------------------------------------------------------


def result_to_dict(r: Result) -> dict[str, object]:
    return {
        "inspection": r.header,
        "severity": r.severity.label,
        "waiverauth": r.waiverauth.value,
        "verb": r.verb.value,
        "message": r.msg,
        "details": r.details,
        "remedy": r.remedy,
        "noun": r.noun,
        "arch": r.arch,
        "file": r.file,
    }


def format_json(run: RunResult, outcome: Outcome, threshold: Severity) -> str:
    """Format results as JSON with ``results`` and ``summary`` keys."""
    output: dict[str, object] = {
        "results": [result_to_dict(r) for r in _findings(run, show_ok=True)],
        "summary": {
            "outcome": outcome.value,
            "worst": run.worst.label,
            "threshold": threshold.label,
            "ran": run.ran,
            "skipped": run.skipped,
            "counts": {s.label: n for s, n in run.results.counts().items()},
            "elapsed_ms": run.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(run: RunResult) -> str:
    """One ``inspection:severity:waiver:file:message`` line per non-OK result."""
    lines: list[str] = []
    for r in _findings(run, show_ok=False):
        lines.append(f"{r.header}:{r.severity.label}:{r.waiverauth.value}:{r.file or ''}:{r.msg or ''}")
    return "\n".join(lines)
