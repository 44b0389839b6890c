"""Inspection checks: one ``inspect_<name>(ctx) -> bool`` per registered inspection."""

from buildgate.inspect.checks.files import (
    inspect_addedfiles,
    inspect_filesize,
    inspect_movedfiles,
    inspect_pathmigration,
    inspect_removedfiles,
)
from buildgate.inspect.checks.metadata import (
    inspect_emptypayload,
    inspect_license,
    inspect_metadata,
)
from buildgate.inspect.checks.security import (
    inspect_capabilities,
    inspect_ownership,
    inspect_permissions,
    inspect_politics,
)

__all__ = [
    "inspect_addedfiles",
    "inspect_capabilities",
    "inspect_emptypayload",
    "inspect_filesize",
    "inspect_license",
    "inspect_metadata",
    "inspect_movedfiles",
    "inspect_ownership",
    "inspect_pathmigration",
    "inspect_permissions",
    "inspect_politics",
    "inspect_removedfiles",
]
