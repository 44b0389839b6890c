"""Fixed registry of inspections, in run order."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from buildgate.inspect import checks
from buildgate.results.ledger import Severity, Verb

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from buildgate.inspect.context import InspectionContext

logger = logging.getLogger(__name__)


class InspectionMode(enum.Enum):
    """Whether an inspection needs both builds or works on the after build alone."""

    SINGLE = "single"
    DIFF = "diff"


class Inspection(enum.Flag):
    """One bit per registered inspection; combine to select a set."""

    EMPTYPAYLOAD = enum.auto()
    METADATA = enum.auto()
    LICENSE = enum.auto()
    ADDEDFILES = enum.auto()
    REMOVEDFILES = enum.auto()
    MOVEDFILES = enum.auto()
    FILESIZE = enum.auto()
    PERMISSIONS = enum.auto()
    OWNERSHIP = enum.auto()
    CAPABILITIES = enum.auto()
    POLITICS = enum.auto()
    PATHMIGRATION = enum.auto()


@dataclass(frozen=True)
class InspectionSpec:
    """A registered inspection."""

    flag: Inspection
    name: str
    mode: InspectionMode
    check: Callable[[InspectionContext], bool]
    description: str

    def run(self, ctx: InspectionContext) -> bool:
        """Run the check, turning any fault into a BAD result.

        ``MemoryError`` is not contained.
        """
        try:
            return self.check(ctx)
        except MemoryError:
            raise
        except Exception as exc:
            logger.exception("Inspection %s failed", self.name)
            ctx.add_result(
                Severity.BAD,
                f"Inspection {self.name} failed: {type(exc).__name__}: {exc}",
                verb=Verb.FAILED,
                noun=self.name,
                remedy="Report this failure to the buildgate maintainers.",
            )
            return False


REGISTRY: tuple[InspectionSpec, ...] = (
    InspectionSpec(
        Inspection.EMPTYPAYLOAD,
        "emptypayload",
        InspectionMode.SINGLE,
        checks.inspect_emptypayload,
        "Packages with no payload that are not expected to be empty.",
    ),
    InspectionSpec(
        Inspection.METADATA,
        "metadata",
        InspectionMode.SINGLE,
        checks.inspect_metadata,
        "Vendor, build host, and prohibited words in summary and description.",
    ),
    InspectionSpec(
        Inspection.LICENSE,
        "license",
        InspectionMode.SINGLE,
        checks.inspect_license,
        "Empty or prohibited License tags and license changes.",
    ),
    InspectionSpec(
        Inspection.ADDEDFILES,
        "addedfiles",
        InspectionMode.DIFF,
        checks.inspect_addedfiles,
        "Files new in the after build, forbidden and security-sensitive paths.",
    ),
    InspectionSpec(
        Inspection.REMOVEDFILES,
        "removedfiles",
        InspectionMode.DIFF,
        checks.inspect_removedfiles,
        "Files missing from the after build, removed shared libraries.",
    ),
    InspectionSpec(
        Inspection.MOVEDFILES,
        "movedfiles",
        InspectionMode.DIFF,
        checks.inspect_movedfiles,
        "Files moved to a new path or to another subpackage.",
    ),
    InspectionSpec(
        Inspection.FILESIZE,
        "filesize",
        InspectionMode.DIFF,
        checks.inspect_filesize,
        "Files whose size changed beyond the configured threshold.",
    ),
    InspectionSpec(
        Inspection.PERMISSIONS,
        "permissions",
        InspectionMode.SINGLE,
        checks.inspect_permissions,
        "File modes, setuid/setgid and world-writable files.",
    ),
    InspectionSpec(
        Inspection.OWNERSHIP,
        "ownership",
        InspectionMode.SINGLE,
        checks.inspect_ownership,
        "File owners and groups.",
    ),
    InspectionSpec(
        Inspection.CAPABILITIES,
        "capabilities",
        InspectionMode.SINGLE,
        checks.inspect_capabilities,
        "File capabilities against the approved list.",
    ),
    InspectionSpec(
        Inspection.POLITICS,
        "politics",
        InspectionMode.SINGLE,
        checks.inspect_politics,
        "Allow/deny rules for file paths and content digests.",
    ),
    InspectionSpec(
        Inspection.PATHMIGRATION,
        "pathmigration",
        InspectionMode.SINGLE,
        checks.inspect_pathmigration,
        "Files installed under migrated directory prefixes.",
    ),
)

ALL_INSPECTIONS: Inspection = Inspection(0)
for _spec in REGISTRY:
    ALL_INSPECTIONS |= _spec.flag
del _spec

_BY_NAME: dict[str, InspectionSpec] = {spec.name: spec for spec in REGISTRY}


def inspection_names() -> tuple[str, ...]:
    """Registered inspection names, in registration order."""
    return tuple(spec.name for spec in REGISTRY)


def get_inspection(name: str) -> InspectionSpec:
    """Look up a registered inspection by name.

    Raises ``ValueError`` for unknown names.
    """
    try:
        return _BY_NAME[name.strip().lower()]
    except KeyError:
        msg = f"unknown inspection '{name}', must be one of {list(inspection_names())}"
        raise ValueError(msg) from None


def to_flags(names: Iterable[str]) -> Inspection:
    flags = Inspection(0)
    for name in names:
        flags |= get_inspection(name).flag
    return flags


def select_inspections(
    include: Iterable[str] | None = None,
    exclude: Iterable[str] = (),
) -> Inspection:
    """Build the selected flag set: *include* (or everything) minus *exclude*."""
    selected = ALL_INSPECTIONS if include is None else to_flags(include)
    return selected & ~to_flags(exclude)


def selected_specs(selected: Inspection) -> list[InspectionSpec]:
    """Registered inspections in *selected*, in registration order."""
    return [spec for spec in REGISTRY if spec.flag & selected]
