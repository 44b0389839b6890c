"""File-set inspections: added, removed, and moved files, sizes, path migration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from buildgate.results.ledger import Severity, Verb, WaiverAuth

if TYPE_CHECKING:
    from buildgate.inspect.context import InspectionContext
    from buildgate.model.build import File

logger = logging.getLogger(__name__)

SHARED_LIBRARY_MARKER = ".so"


def _is_shared_library(file: File) -> bool:
    name = file.localpath.rsplit("/", 1)[-1]
    return name.endswith(SHARED_LIBRARY_MARKER) or f"{SHARED_LIBRARY_MARKER}." in name


def inspect_addedfiles(ctx: InspectionContext) -> bool:
    """Report files present only in the after build.

    Forbidden paths are BAD; new files under security-sensitive prefixes
    need security review.
    """
    ok = True
    for package, file in ctx.peers.added_files():
        if file.meta.is_dir or ctx.is_ignored(file.localpath):
            continue

        reason = ctx.policy.forbidden_path_reason(file.localpath)
        if reason is not None:
            ctx.add_result(
                Severity.BAD,
                f"{file.localpath} added to {package.name} on {package.arch}: {reason}",
                verb=Verb.ADDED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                remedy="Remove the file from the package payload or install it under a permitted path.",
            )
            ok = False
        elif ctx.policy.is_security_path(file.localpath):
            severity = ctx.security_severity("securitypath", package, default=Severity.VERIFY)
            ctx.add_result(
                severity,
                f"{file.localpath} added to {package.name} on {package.arch} "
                f"under a security-sensitive path",
                waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
                verb=Verb.ADDED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                remedy="Have the security team review the new file.",
            )
            ok = ok and not severity.is_violation
        else:
            ctx.add_result(
                Severity.INFO,
                f"{file.localpath} added to {package.name} on {package.arch}",
                verb=Verb.ADDED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
            )

    if ok:
        ctx.add_ok()
    return ok


def inspect_removedfiles(ctx: InspectionContext) -> bool:
    """Report files present only in the before build.

    Removed shared libraries may break dependent packages (ABI); removed
    security-sensitive files need security review.
    """
    ok = True
    for package, file in ctx.peers.removed_files():
        if file.meta.is_dir or ctx.is_ignored(file.localpath):
            continue

        if ctx.policy.is_security_path(file.localpath):
            severity = ctx.security_severity("securitypath", package, default=Severity.VERIFY)
            ctx.add_result(
                severity,
                f"{file.localpath} removed from {package.name} on {package.arch} "
                f"(security-sensitive path)",
                waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
                verb=Verb.REMOVED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                remedy="Have the security team confirm the removal.",
            )
            ok = ok and not severity.is_violation
        elif _is_shared_library(file):
            ctx.add_result(
                Severity.VERIFY,
                f"Shared library {file.localpath} removed from {package.name} on {package.arch}",
                waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                verb=Verb.REMOVED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                details="Packages linked against this library will fail to load.",
                remedy="Keep the library or confirm no package in the release depends on it.",
            )
            ok = False
        else:
            ctx.add_result(
                Severity.INFO,
                f"{file.localpath} removed from {package.name} on {package.arch}",
                verb=Verb.REMOVED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
            )

    if ok:
        ctx.add_ok()
    return ok


def inspect_movedfiles(ctx: InspectionContext) -> bool:
    """Report files whose content moved to a new path or another subpackage."""
    ok = True
    for package, file, before_file in ctx.peers.paired_files():
        if not (file.moved_path or file.moved_subpackage):
            continue
        if file.meta.is_dir or ctx.is_ignored(file.localpath):
            continue

        before_pkg = ctx.peers.package_of(before_file)
        if file.moved_subpackage and file.moved_path:
            msg = (
                f"{before_file.localpath} in {before_pkg.name} moved to "
                f"{file.localpath} in {package.name} on {package.arch}"
            )
        elif file.moved_subpackage:
            msg = (
                f"{file.localpath} moved from subpackage {before_pkg.name} "
                f"to {package.name} on {package.arch}"
            )
        else:
            msg = f"{before_file.localpath} moved to {file.localpath} in {package.name} on {package.arch}"

        security = ctx.policy.is_security_path(file.localpath) or ctx.policy.is_security_path(
            before_file.localpath
        )
        if security:
            severity = ctx.security_severity("securitypath", package, default=Severity.VERIFY)
            ctx.add_result(
                severity,
                f"{msg} (security-sensitive path)",
                waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
                verb=Verb.CHANGED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                remedy="Have the security team review the move.",
            )
            ok = ok and not severity.is_violation
        else:
            ctx.add_result(
                Severity.INFO,
                msg,
                verb=Verb.CHANGED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
            )

    if ok:
        ctx.add_ok()
    return ok


def inspect_filesize(ctx: InspectionContext) -> bool:
    """Report paired regular files whose size changed beyond the threshold."""
    threshold = ctx.policy.size_threshold
    if threshold is None:
        logger.debug("filesize: no size_threshold configured")
        ctx.add_ok()
        return True

    ok = True
    for package, file, before_file in ctx.peers.paired_files():
        if not (file.meta.is_regular and before_file.meta.is_regular):
            continue
        if ctx.is_ignored(file.localpath):
            continue

        old, new = before_file.meta.size, file.meta.size
        if old == new:
            continue
        if new == 0:
            ctx.add_result(
                Severity.VERIFY,
                f"{file.localpath} became empty in {package.name} on {package.arch}",
                waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                verb=Verb.CHANGED,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                details=f"was {old} bytes",
            )
            ok = False
            continue

        change = 100.0 if old == 0 else abs(new - old) * 100.0 / old
        if change < threshold:
            continue
        direction = "grew" if new > old else "shrank"
        ctx.add_result(
            Severity.INFO,
            f"{file.localpath} {direction} by {change:.0f}% in {package.name} on {package.arch}",
            verb=Verb.CHANGED,
            noun=file.localpath,
            arch=package.arch,
            file=file.localpath,
            details=f"{old} -> {new} bytes",
        )

    if ok:
        ctx.add_ok()
    return ok


def inspect_pathmigration(ctx: InspectionContext) -> bool:
    """Report files installed under prefixes that have migrated elsewhere."""
    ok = True
    for package, file in ctx.after_files():
        migration = ctx.policy.migrated_path(file.localpath)
        if migration is None:
            continue
        old, new = migration
        ctx.add_result(
            Severity.VERIFY,
            f"{file.localpath} in {package.name} on {package.arch} is installed under "
            f"{old}, which has migrated to {new}",
            waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
            verb=Verb.FAILED,
            noun=file.localpath,
            arch=package.arch,
            file=file.localpath,
            remedy=f"Install the file under {new} instead.",
        )
        ok = False

    if ok:
        ctx.add_ok()
    return ok
