"""Policy rule store: immutable lookup structures consulted by inspections."""

from __future__ import annotations

import enum
import fnmatch
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildgate.results.ledger import Severity

if TYPE_CHECKING:
    from collections.abc import Mapping

_GLOB_CHARS = frozenset("*?[")

# ---------------------------------------------------------------------------
# Rule entries
# ---------------------------------------------------------------------------


class SecurityAction(enum.Enum):
    """What to do when a security-relevant finding matches a rule set."""

    SKIP = "skip"
    INFORM = "inform"
    VERIFY = "verify"
    FAIL = "fail"

    @property
    def severity(self) -> Severity:
        return {
            SecurityAction.SKIP: Severity.SKIP,
            SecurityAction.INFORM: Severity.INFO,
            SecurityAction.VERIFY: Severity.VERIFY,
            SecurityAction.FAIL: Severity.BAD,
        }[self]


@dataclass(frozen=True)
class PathRule:
    """Allow or deny files matching a glob, with the approved content digest.

    A digest of ``*`` approves any content.
    """

    pattern: str
    digest: str
    allowed: bool

    def matches_path(self, path: str) -> bool:
        return fnmatch.fnmatchcase(path, self.pattern)

    def matches_digest(self, checksum: str | None) -> bool:
        if self.digest == "*":
            return True
        return checksum is not None and checksum.lower() == self.digest.lower()


@dataclass(frozen=True)
class FileinfoEntry:
    """Expected mode and ownership for one path."""

    path: str
    mode: int
    owner: str
    group: str


@dataclass(frozen=True)
class SecurityRuleSet:
    """Security actions for packages matching (package, version, release).

    Each key is an exact string or a glob.
    """

    package: str
    version: str
    release: str
    actions: Mapping[str, SecurityAction]

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.package, self.version, self.release)

    @property
    def is_exact(self) -> bool:
        return not any(_GLOB_CHARS & set(part) for part in self.key)

    def matches(self, name: str, version: str, release: str) -> bool:
        return (
            fnmatch.fnmatchcase(name, self.package)
            and fnmatch.fnmatchcase(version, self.version)
            and fnmatch.fnmatchcase(release, self.release)
        )


class SecurityRules:
    """Compound-key lookup: exact (package, version, release) first, then globs in order."""

    def __init__(self, rule_sets: tuple[SecurityRuleSet, ...] = ()) -> None:
        self.rule_sets = rule_sets
        self._exact: dict[tuple[str, str, str], SecurityRuleSet] = {}
        self._patterns: list[SecurityRuleSet] = []
        for rule_set in rule_sets:
            if rule_set.is_exact:
                self._exact.setdefault(rule_set.key, rule_set)
            else:
                self._patterns.append(rule_set)

    def __len__(self) -> int:
        return len(self.rule_sets)

    def lookup(self, rule_type: str, name: str, version: str, release: str) -> SecurityAction | None:
        exact = self._exact.get((name, version, release))
        if exact is not None and rule_type in exact.actions:
            return exact.actions[rule_type]
        for rule_set in self._patterns:
            if rule_type in rule_set.actions and rule_set.matches(name, version, release):
                return rule_set.actions[rule_type]
        return None


@dataclass(frozen=True)
class IgnoreEntry:
    """A per-inspection ignore glob; ``ignore=False`` un-ignores a path."""

    pattern: str
    ignore: bool = True


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyStore:
    """Read-only policy data for one run.

    Built once by :func:`buildgate.policy.loader.parse_policy`; safe for
    concurrent reads.  Lookups never raise; ``None`` means "no rule".
    """

    vendor: str | None = None
    badwords: tuple[str, ...] = ()
    buildhost_subdomains: tuple[str, ...] = ()
    security_path_prefixes: tuple[str, ...] = ()
    forbidden_path_prefixes: tuple[str, ...] = ()
    forbidden_path_suffixes: tuple[str, ...] = ()
    forbidden_directories: tuple[str, ...] = ()
    forbidden_owners: tuple[str, ...] = ()
    forbidden_groups: tuple[str, ...] = ()
    bin_paths: tuple[str, ...] = ()
    bin_owner: str | None = None
    bin_group: str | None = None
    size_threshold: int | None = None
    expected_empty: frozenset[str] = frozenset()
    path_migration: Mapping[str, str] = field(default_factory=dict)
    path_migration_excluded: tuple[str, ...] = ()
    fileinfo: Mapping[str, FileinfoEntry] = field(default_factory=dict)
    capabilities: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    politics: tuple[PathRule, ...] = ()
    security: SecurityRules = field(default_factory=SecurityRules)
    ignores: tuple[str, ...] = ()
    inspection_ignores: Mapping[str, tuple[IgnoreEntry, ...]] = field(default_factory=dict)

    # -- pattern rules ------------------------------------------------------

    def classify_path(self, path: str) -> PathRule | None:
        """Return the first politics rule whose pattern matches *path*."""
        for rule in self.politics:
            if rule.matches_path(path):
                return rule
        return None

    def is_ignored(self, inspection: str, path: str) -> bool:
        """Check per-inspection entries first, then the global ignore list."""
        for entry in self.inspection_ignores.get(inspection, ()):
            if fnmatch.fnmatchcase(path, entry.pattern):
                return entry.ignore
        return any(fnmatch.fnmatchcase(path, pattern) for pattern in self.ignores)

    # -- exact-key maps -----------------------------------------------------

    def expected_fileinfo(self, path: str) -> FileinfoEntry | None:
        return self.fileinfo.get(path)

    def expected_caps(self, package: str, path: str) -> str | None:
        return self.capabilities.get(package, {}).get(path)

    def migrated_path(self, path: str) -> tuple[str, str] | None:
        """Return (old_prefix, new_prefix) if *path* lives under a migrated prefix."""
        for excluded in self.path_migration_excluded:
            if path == excluded or path.startswith(excluded.rstrip("/") + "/"):
                return None
        matches = [old for old in self.path_migration if path.startswith(old.rstrip("/") + "/")]
        if not matches:
            return None
        old = max(matches, key=len)
        return old, self.path_migration[old]

    # -- compound-key rule sets ---------------------------------------------

    def security_action(
        self, rule_type: str, name: str, version: str, release: str
    ) -> SecurityAction | None:
        return self.security.lookup(rule_type, name, version, release)

    # -- path lists ---------------------------------------------------------

    def is_security_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.security_path_prefixes)

    def forbidden_path_reason(self, path: str) -> str | None:
        """Explain why *path* is forbidden, or return None."""
        for prefix in self.forbidden_path_prefixes:
            if path.startswith(prefix):
                return f"path begins with forbidden prefix '{prefix}'"
        for suffix in self.forbidden_path_suffixes:
            if path.endswith(suffix):
                return f"path ends with forbidden suffix '{suffix}'"
        components = [part for part in path.split("/") if part][:-1]
        for directory in self.forbidden_directories:
            if directory.strip("/") in components:
                return f"path contains forbidden directory '{directory}'"
        return None

    def find_badwords(self, text: str) -> list[str]:
        """Return prohibited words found in *text* (whole words, case-insensitive)."""
        found: list[str] = []
        for word in self.badwords:
            if re.search(rf"\b{re.escape(word)}\b", text, flags=re.IGNORECASE):
                found.append(word)
        return found
