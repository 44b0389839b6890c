"""Verdict engine: reduce a ledger to pass/fail and a process exit status."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from buildgate.results.ledger import Severity


class Outcome(enum.Enum):
    """Final outcome of a run."""

    PASS = "pass"
    FAIL = "fail"
    USAGE_ERROR = "usage-error"
    INTERNAL_ERROR = "internal-error"


@dataclass(frozen=True)
class ExitCodes:
    """Process exit status for each outcome.  Configurable by the caller."""

    passed: int = 0
    failed: int = 1
    usage_error: int = 2
    internal_error: int = 3

    def __post_init__(self) -> None:
        codes = (self.passed, self.failed, self.usage_error, self.internal_error)
        if len(set(codes)) != len(codes):
            msg = f"exit codes must be distinct, got {codes}"
            raise ValueError(msg)

    def for_outcome(self, outcome: Outcome) -> int:
        return {
            Outcome.PASS: self.passed,
            Outcome.FAIL: self.failed,
            Outcome.USAGE_ERROR: self.usage_error,
            Outcome.INTERNAL_ERROR: self.internal_error,
        }[outcome]


def validate_threshold(threshold: Severity) -> Severity:
    """Reject thresholds that cannot be compared against a worst severity."""
    if threshold is Severity.SKIP:
        msg = "threshold cannot be 'skip'"
        raise ValueError(msg)
    return threshold


def verdict(worst: Severity, threshold: Severity) -> Outcome:
    """FAIL when the worst severity reaches the threshold, PASS otherwise."""
    validate_threshold(threshold)
    if worst is Severity.SKIP:
        worst = Severity.OK
    return Outcome.FAIL if worst >= threshold else Outcome.PASS
