"""Results domain: findings ledger and verdict engine."""

from buildgate.results.ledger import (
    Result,
    ResultParams,
    Results,
    Severity,
    Verb,
    WaiverAuth,
)
from buildgate.results.verdict import ExitCodes, Outcome, validate_threshold, verdict

__all__ = [
    "ExitCodes",
    "Outcome",
    "Result",
    "ResultParams",
    "Results",
    "Severity",
    "Verb",
    "WaiverAuth",
    "validate_threshold",
    "verdict",
]
