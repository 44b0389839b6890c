"""Policy domain: rule store and YAML policy loader."""

from buildgate.policy.loader import (
    SUPPORTED_SCHEMA_VERSIONS,
    VALID_SECURITY_RULE_TYPES,
    PolicyError,
    load_policy,
    parse_policy,
)
from buildgate.policy.rules import (
    FileinfoEntry,
    IgnoreEntry,
    PathRule,
    PolicyStore,
    SecurityAction,
    SecurityRules,
    SecurityRuleSet,
)

__all__ = [
    "SUPPORTED_SCHEMA_VERSIONS",
    "VALID_SECURITY_RULE_TYPES",
    "FileinfoEntry",
    "IgnoreEntry",
    "PathRule",
    "PolicyError",
    "PolicyStore",
    "SecurityAction",
    "SecurityRuleSet",
    "SecurityRules",
    "load_policy",
    "parse_policy",
]
