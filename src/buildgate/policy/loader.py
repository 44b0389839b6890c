"""Parse the YAML policy file into a :class:`PolicyStore`."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING

import yaml

from buildgate.model.build import parse_mode
from buildgate.policy.rules import (
    FileinfoEntry,
    IgnoreEntry,
    PathRule,
    PolicyStore,
    SecurityAction,
    SecurityRules,
    SecurityRuleSet,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})

# Security rule types understood by the inspections.
VALID_SECURITY_RULE_TYPES: frozenset[str] = frozenset(
    {"caps", "setuid", "worldwritable", "securitypath", "modes"}
)


class PolicyError(Exception):
    """Raised when the policy file is missing or contains invalid rules."""


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _str_list(data: dict[str, object], key: str) -> tuple[str, ...]:
    raw = data.get(key, [])
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,)
    if not isinstance(raw, list):
        msg = f"policy: '{key}' must be a list of strings"
        raise ValueError(msg)
    return tuple(str(item) for item in raw)


def _optional_str(data: dict[str, object], key: str) -> str | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str | int | float):
        msg = f"policy: '{key}' must be a string"
        raise ValueError(msg)
    return str(raw)


def _parse_politics(raw: object) -> tuple[PathRule, ...]:
    """Parse the ordered ``politics`` list of allow/deny entries."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        msg = "policy: 'politics' must be a list"
        raise ValueError(msg)

    rules: list[PathRule] = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            msg = f"policy: politics entry at index {idx} must be a mapping"
            raise ValueError(msg)
        pattern = entry.get("pattern")
        if not isinstance(pattern, str) or not pattern.strip():
            msg = f"policy: politics entry at index {idx} missing required 'pattern' field"
            raise ValueError(msg)
        allowed = entry.get("allowed")
        if not isinstance(allowed, bool):
            msg = f"policy: politics entry '{pattern}' must set 'allowed' to true or false"
            raise ValueError(msg)
        raw_digest = entry.get("digest")
        digest = "*" if raw_digest is None else str(raw_digest).strip() or "*"
        rules.append(PathRule(pattern=pattern, digest=digest, allowed=allowed))
    return tuple(rules)


def _parse_fileinfo(raw: object) -> MappingProxyType[str, FileinfoEntry]:
    """Parse ``fileinfo`` entries (mode, owner, group, path) into an exact path map."""
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, list):
        msg = "policy: 'fileinfo' must be a list"
        raise ValueError(msg)

    entries: dict[str, FileinfoEntry] = {}
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            msg = f"policy: fileinfo entry at index {idx} must be a mapping"
            raise ValueError(msg)
        missing = [k for k in ("path", "mode", "owner", "group") if entry.get(k) is None]
        if missing:
            msg = f"policy: fileinfo entry at index {idx} missing {missing}"
            raise ValueError(msg)
        path = str(entry["path"])
        if path in entries:
            msg = f"policy: duplicate fileinfo entry for '{path}'"
            raise ValueError(msg)
        entries[path] = FileinfoEntry(
            path=path,
            mode=parse_mode(entry["mode"]),
            owner=str(entry["owner"]),
            group=str(entry["group"]),
        )
    return MappingProxyType(entries)


def _parse_capabilities(raw: object) -> MappingProxyType[str, MappingProxyType[str, str]]:
    """Parse ``capabilities``: package name -> {path: capability string}."""
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        msg = "policy: 'capabilities' must be a mapping of package names"
        raise ValueError(msg)

    result: dict[str, MappingProxyType[str, str]] = {}
    for package, files in raw.items():
        if not isinstance(files, dict):
            msg = f"policy: capabilities for '{package}' must map paths to capabilities"
            raise ValueError(msg)
        result[str(package)] = MappingProxyType({str(p): str(c) for p, c in files.items()})
    return MappingProxyType(result)


def _parse_security(raw: object) -> SecurityRules:
    """Parse ``security`` rule sets keyed by (package, version, release)."""
    if raw is None:
        return SecurityRules()
    if not isinstance(raw, list):
        msg = "policy: 'security' must be a list"
        raise ValueError(msg)

    rule_sets: list[SecurityRuleSet] = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            msg = f"policy: security entry at index {idx} must be a mapping"
            raise ValueError(msg)
        rules_raw = entry.get("rules")
        if not isinstance(rules_raw, dict) or not rules_raw:
            msg = f"policy: security entry at index {idx} must have a non-empty 'rules' mapping"
            raise ValueError(msg)

        actions: dict[str, SecurityAction] = {}
        for rule_type, action_raw in rules_raw.items():
            if rule_type not in VALID_SECURITY_RULE_TYPES:
                msg = (
                    f"policy: security entry at index {idx} has invalid rule type "
                    f"'{rule_type}', must be one of {sorted(VALID_SECURITY_RULE_TYPES)}"
                )
                raise ValueError(msg)
            try:
                actions[str(rule_type)] = SecurityAction(str(action_raw).lower())
            except ValueError:
                msg = (
                    f"policy: security entry at index {idx} has invalid action "
                    f"'{action_raw}', must be one of {[a.value for a in SecurityAction]}"
                )
                raise ValueError(msg) from None

        rule_sets.append(
            SecurityRuleSet(
                package=str(entry.get("package", "*")),
                version=str(entry.get("version", "*")),
                release=str(entry.get("release", "*")),
                actions=MappingProxyType(actions),
            )
        )
    return SecurityRules(tuple(rule_sets))


def _parse_inspection_ignores(raw: object) -> MappingProxyType[str, tuple[IgnoreEntry, ...]]:
    """Parse per-inspection ignores; a leading ``!`` un-ignores a glob."""
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        msg = "policy: 'inspection_ignores' must map inspection names to lists"
        raise ValueError(msg)

    from buildgate.inspect.registry import inspection_names

    known = inspection_names()
    result: dict[str, tuple[IgnoreEntry, ...]] = {}
    for name, patterns in raw.items():
        if name not in known:
            msg = f"policy: inspection_ignores names unknown inspection '{name}'"
            raise ValueError(msg)
        if not isinstance(patterns, list):
            msg = f"policy: inspection_ignores for '{name}' must be a list"
            raise ValueError(msg)
        entries: list[IgnoreEntry] = []
        for pattern in patterns:
            text = str(pattern)
            if text.startswith("!"):
                entries.append(IgnoreEntry(pattern=text[1:], ignore=False))
            else:
                entries.append(IgnoreEntry(pattern=text))
        result[str(name)] = tuple(entries)
    return MappingProxyType(result)


def _parse_forbidden_paths(raw: object) -> tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]:
    if raw is None:
        return (), (), ()
    if not isinstance(raw, dict):
        msg = "policy: 'forbidden_paths' must be a mapping"
        raise ValueError(msg)
    return _str_list(raw, "prefixes"), _str_list(raw, "suffixes"), _str_list(raw, "directories")


def _parse_size_threshold(raw: object) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        msg = "policy: 'size_threshold' must be a non-negative integer percentage"
        raise ValueError(msg)
    return raw


def _parse_path_migration(raw: object) -> MappingProxyType[str, str]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        msg = "policy: 'path_migration' must map old prefixes to new prefixes"
        raise ValueError(msg)
    return MappingProxyType({str(old): str(new) for old, new in raw.items()})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_policy(data: object) -> PolicyStore:
    """Validate a parsed policy mapping and build the store.

    Raises ``ValueError`` on schema errors.
    """
    if data is None:
        return PolicyStore()
    if not isinstance(data, dict):
        msg = "policy must be a YAML mapping"
        raise ValueError(msg)

    version = data.get("version")
    if version is None:
        msg = "policy: missing required 'version' field"
        raise ValueError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"policy: unsupported version {version}, expected one of {expected}"
        raise ValueError(msg)

    prefixes, suffixes, directories = _parse_forbidden_paths(data.get("forbidden_paths"))
    path_migration = data.get("path_migration")
    excluded: tuple[str, ...] = ()
    if isinstance(path_migration, dict) and "exclude" in path_migration:
        path_migration = dict(path_migration)
        excluded = _str_list(path_migration, "exclude")
        del path_migration["exclude"]

    store = PolicyStore(
        vendor=_optional_str(data, "vendor"),
        badwords=_str_list(data, "badwords"),
        buildhost_subdomains=_str_list(data, "buildhost_subdomain"),
        security_path_prefixes=_str_list(data, "security_path_prefix"),
        forbidden_path_prefixes=prefixes,
        forbidden_path_suffixes=suffixes,
        forbidden_directories=directories,
        forbidden_owners=_str_list(data, "forbidden_owners"),
        forbidden_groups=_str_list(data, "forbidden_groups"),
        bin_paths=_str_list(data, "bin_paths"),
        bin_owner=_optional_str(data, "bin_owner"),
        bin_group=_optional_str(data, "bin_group"),
        size_threshold=_parse_size_threshold(data.get("size_threshold")),
        expected_empty=frozenset(_str_list(data, "expected_empty")),
        path_migration=_parse_path_migration(path_migration),
        path_migration_excluded=excluded,
        fileinfo=_parse_fileinfo(data.get("fileinfo")),
        capabilities=_parse_capabilities(data.get("capabilities")),
        politics=_parse_politics(data.get("politics")),
        security=_parse_security(data.get("security")),
        ignores=_str_list(data, "ignore"),
        inspection_ignores=_parse_inspection_ignores(data.get("inspection_ignores")),
    )

    logger.debug(
        "Policy loaded: %d politics rules, %d security rule sets, %d fileinfo entries",
        len(store.politics),
        len(store.security),
        len(store.fileinfo),
    )
    return store


def load_policy(policy_path: Path) -> PolicyStore:
    """Read and validate a policy YAML file.

    Raises
    ------
    PolicyError
        When the file cannot be read or contains an invalid rule.
    """
    try:
        with policy_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Cannot read policy {policy_path}: {exc}"
        raise PolicyError(msg) from exc

    try:
        return parse_policy(data)
    except (ValueError, TypeError) as exc:
        msg = f"Invalid policy {policy_path}: {exc}"
        raise PolicyError(msg) from exc
