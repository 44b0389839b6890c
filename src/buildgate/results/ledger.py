"""Results ledger: append-only, severity-tagged inspection findings."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class Severity(enum.IntEnum):
    """Ordered impact of a finding.  SKIP is recorded but never reported."""

    OK = 1
    INFO = 2
    VERIFY = 3
    BAD = 4
    SKIP = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_violation(self) -> bool:
        """True for severities that make an inspection report failure."""
        return Severity.VERIFY <= self <= Severity.BAD

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a severity name (case-insensitive)."""
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            msg = f"invalid severity '{value}', must be one of {[s.label for s in cls]}"
            raise ValueError(msg) from None


class WaiverAuth(enum.Enum):
    """Who may excuse a finding."""

    NOT_WAIVABLE = "not-waivable"
    WAIVABLE_BY_ANYONE = "anyone"
    WAIVABLE_BY_SECURITY = "security"


class Verb(enum.Enum):
    """What happened to the noun of a finding."""

    NIL = "nil"
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    FAILED = "failed"


@dataclass(frozen=True)
class ResultParams:
    """Everything an inspection supplies when recording a finding."""

    severity: Severity = Severity.OK
    waiverauth: WaiverAuth = WaiverAuth.NOT_WAIVABLE
    header: str = ""
    msg: str | None = None
    details: str | None = None
    remedy: str | None = None
    verb: Verb = Verb.NIL
    noun: str | None = None
    arch: str | None = None
    file: str | None = None


@dataclass(frozen=True)
class Result:
    """A recorded finding.

    ``seq`` is the global append position; ``origin`` is the registration
    index of the inspection that produced it.
    """

    seq: int
    origin: int
    severity: Severity
    waiverauth: WaiverAuth
    header: str
    msg: str | None
    details: str | None
    remedy: str | None
    verb: Verb
    noun: str | None
    arch: str | None
    file: str | None

    @property
    def reportable(self) -> bool:
        return self.severity is not Severity.SKIP


class Results:
    """Append-only ledger with a running worst severity.

    Appends and the worst-severity update happen under one lock, so the
    ledger can be shared by inspections running on a thread pool.
    """

    def __init__(self) -> None:
        self._entries: list[Result] = []
        self._lock = threading.Lock()
        self._worst = Severity.OK

    def add(self, params: ResultParams, *, origin: int = 0) -> Result:
        """Append one finding and return the recorded Result."""
        with self._lock:
            result = Result(
                seq=len(self._entries),
                origin=origin,
                severity=params.severity,
                waiverauth=params.waiverauth,
                header=params.header,
                msg=params.msg,
                details=params.details,
                remedy=params.remedy,
                verb=params.verb,
                noun=params.noun,
                arch=params.arch,
                file=params.file,
            )
            self._entries.append(result)
            if params.severity is not Severity.SKIP and params.severity > self._worst:
                self._worst = params.severity
        return result

    def worst(self) -> Severity:
        """Highest non-SKIP severity recorded so far; OK when empty."""
        return self._worst

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Result]:
        return iter(list(self._entries))

    def reportable(self) -> list[Result]:
        """Results in append order, without SKIP entries."""
        return [r for r in self._entries if r.reportable]

    def in_registration_order(self) -> list[Result]:
        """Results ordered by inspection registration, then append order."""
        return sorted(self._entries, key=lambda r: (r.origin, r.seq))

    def for_header(self, header: str) -> list[Result]:
        return [r for r in self._entries if r.header == header]

    def counts(self) -> dict[Severity, int]:
        """Number of results per severity (SKIP included)."""
        counts = dict.fromkeys(Severity, 0)
        for result in self._entries:
            counts[result.severity] += 1
        return counts
