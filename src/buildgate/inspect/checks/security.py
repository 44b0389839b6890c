"""Security inspections: modes, ownership, capabilities, and content politics."""

from __future__ import annotations

import logging
import stat
from typing import TYPE_CHECKING

from buildgate.results.ledger import Severity, Verb, WaiverAuth

if TYPE_CHECKING:
    from buildgate.inspect.context import InspectionContext
    from buildgate.model.build import File, Package

logger = logging.getLogger(__name__)


def _is_world_writable(file: File) -> bool:
    meta = file.meta
    if meta.is_symlink or not meta.mode & stat.S_IWOTH:
        return False
    # sticky directories such as /tmp are expected to be world-writable
    return not (meta.is_dir and meta.mode & stat.S_ISVTX)


def _under(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path.startswith(prefix.rstrip("/") + "/") for prefix in prefixes)


# ---------------------------------------------------------------------------
# permissions
# ---------------------------------------------------------------------------


def _mode_findings(
    ctx: InspectionContext, package: Package, file: File
) -> list[tuple[Severity, str, WaiverAuth, Verb, str | None]]:
    """(severity, message, waiver, verb, remedy) for one file's mode."""
    meta = file.meta
    expected = ctx.policy.expected_fileinfo(file.localpath)
    location = f"{file.localpath} in {package.name} on {package.arch}"
    findings: list[tuple[Severity, str, WaiverAuth, Verb, str | None]] = []

    if expected is not None and stat.S_IMODE(expected.mode) != meta.permissions:
        findings.append((
            ctx.security_severity("modes", package, default=Severity.VERIFY),
            f"{location} has mode {meta.filemode}, expected {stat.filemode(expected.mode)}",
            WaiverAuth.WAIVABLE_BY_SECURITY,
            Verb.FAILED,
            "Fix the file mode in the package or update the fileinfo list.",
        ))
    elif expected is None and meta.is_setuid and not meta.is_dir:
        findings.append((
            ctx.security_severity("setuid", package),
            f"{location} is setuid/setgid ({meta.filemode}) and is not on the fileinfo list",
            WaiverAuth.WAIVABLE_BY_SECURITY,
            Verb.FAILED,
            "Drop the setuid/setgid bit or have the security team approve it.",
        ))

    if _is_world_writable(file):
        findings.append((
            ctx.security_severity("worldwritable", package),
            f"{location} is world-writable ({meta.filemode})",
            WaiverAuth.WAIVABLE_BY_SECURITY,
            Verb.FAILED,
            "Remove the world-writable bit from the file mode.",
        ))

    before = ctx.peer_of(file)
    if before is not None and before.meta.permissions != meta.permissions:
        approved = expected is not None and stat.S_IMODE(expected.mode) == meta.permissions
        findings.append((
            Severity.INFO if approved else Severity.VERIFY,
            f"{location} changed mode from {before.meta.filemode} to {meta.filemode}",
            WaiverAuth.WAIVABLE_BY_ANYONE,
            Verb.CHANGED,
            None,
        ))
    return findings


def inspect_permissions(ctx: InspectionContext) -> bool:
    """Check file modes against fileinfo, setuid, and world-writable rules."""
    ok = True
    for package, file in ctx.after_files():
        for severity, msg, waiverauth, verb, remedy in _mode_findings(ctx, package, file):
            ctx.add_result(
                severity,
                msg,
                waiverauth=waiverauth,
                verb=verb,
                noun=file.localpath,
                arch=package.arch,
                file=file.localpath,
                remedy=remedy,
            )
            if severity.is_violation:
                ok = False

    if ok:
        ctx.add_ok()
    return ok


# ---------------------------------------------------------------------------
# ownership
# ---------------------------------------------------------------------------


def inspect_ownership(ctx: InspectionContext) -> bool:
    """Check file owners and groups against policy and the before build."""
    ok = True
    policy = ctx.policy
    for package, file in ctx.after_files():
        meta = file.meta
        location = f"{file.localpath} in {package.name} on {package.arch}"
        common = {"noun": file.localpath, "arch": package.arch, "file": file.localpath}

        if meta.owner in policy.forbidden_owners:
            ctx.add_result(
                Severity.BAD,
                f"{location} is owned by forbidden owner '{meta.owner}'",
                verb=Verb.FAILED,
                **common,
            )
            ok = False
        if meta.group in policy.forbidden_groups:
            ctx.add_result(
                Severity.BAD,
                f"{location} belongs to forbidden group '{meta.group}'",
                verb=Verb.FAILED,
                **common,
            )
            ok = False

        if _under(file.localpath, policy.bin_paths) and not meta.is_dir:
            if policy.bin_owner is not None and meta.owner != policy.bin_owner:
                ctx.add_result(
                    Severity.BAD,
                    f"{location} has owner '{meta.owner}', expected '{policy.bin_owner}'",
                    waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                    verb=Verb.FAILED,
                    remedy="Set the owner of installed programs in the %files section.",
                    **common,
                )
                ok = False
            if policy.bin_group is not None and meta.group != policy.bin_group:
                ctx.add_result(
                    Severity.BAD,
                    f"{location} has group '{meta.group}', expected '{policy.bin_group}'",
                    waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                    verb=Verb.FAILED,
                    remedy="Set the group of installed programs in the %files section.",
                    **common,
                )
                ok = False

        expected = policy.expected_fileinfo(file.localpath)
        if expected is not None and (meta.owner, meta.group) != (expected.owner, expected.group):
            ctx.add_result(
                Severity.VERIFY,
                f"{location} is owned by {meta.owner}:{meta.group}, expected "
                f"{expected.owner}:{expected.group}",
                waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
                verb=Verb.FAILED,
                **common,
            )
            ok = False

        before = ctx.peer_of(file)
        if before is None:
            continue
        if (before.meta.owner, before.meta.group) != (meta.owner, meta.group):
            ctx.add_result(
                Severity.VERIFY,
                f"{location} ownership changed from {before.meta.owner}:{before.meta.group} "
                f"to {meta.owner}:{meta.group}",
                waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                verb=Verb.CHANGED,
                **common,
            )
            ok = False

    if ok:
        ctx.add_ok()
    return ok


# ---------------------------------------------------------------------------
# capabilities
# ---------------------------------------------------------------------------


def inspect_capabilities(ctx: InspectionContext) -> bool:
    """Check file capabilities against the approved capabilities list."""
    ok = True
    for package, file in ctx.after_files():
        location = f"{file.localpath} in {package.name} on {package.arch}"
        before = ctx.peer_of(file)
        before_caps = before.caps if before is not None else None

        if file.caps:
            expected = ctx.policy.expected_caps(package.name, file.localpath)
            if expected != file.caps:
                severity = ctx.security_severity("caps", package)
                details = f"expected '{expected}'" if expected else "not on the capabilities list"
                ctx.add_result(
                    severity,
                    f"{location} has capabilities '{file.caps}'",
                    waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
                    verb=Verb.FAILED,
                    noun=file.caps,
                    arch=package.arch,
                    file=file.localpath,
                    details=details,
                    remedy="Have the security team approve the capabilities.",
                )
                if severity.is_violation:
                    ok = False
                continue

        if before is None or before_caps == file.caps:
            continue
        if file.caps:
            msg = f"{location} capabilities changed from '{before_caps or ''}' to '{file.caps}'"
            verb = Verb.CHANGED
        else:
            msg = f"{location} lost capabilities '{before_caps}'"
            verb = Verb.REMOVED
        ctx.add_result(
            Severity.INFO,
            msg,
            verb=verb,
            noun=file.caps or before_caps,
            arch=package.arch,
            file=file.localpath,
        )

    if ok:
        ctx.add_ok()
    return ok


# ---------------------------------------------------------------------------
# politics
# ---------------------------------------------------------------------------


def inspect_politics(ctx: InspectionContext) -> bool:
    """Apply the allow/deny politics list to every payload file.

    The first rule whose glob matches a path decides.  An allowed path must
    also match the rule's digest.
    """
    ok = True
    for package, file in ctx.after_files():
        if file.meta.is_dir:
            continue
        rule = ctx.policy.classify_path(file.localpath)
        if rule is None:
            continue
        if rule.allowed and rule.matches_digest(file.checksum):
            logger.debug("politics: %s allowed by %s", file.localpath, rule.pattern)
            continue

        if rule.allowed:
            msg = (
                f"{file.localpath} in {package.name} on {package.arch} is allowed by "
                f"'{rule.pattern}' but its digest does not match"
            )
            details = f"expected {rule.digest}, got {file.checksum}"
        else:
            msg = (
                f"{file.localpath} in {package.name} on {package.arch} is prohibited "
                f"by '{rule.pattern}'"
            )
            details = None
        ctx.add_result(
            Severity.BAD,
            msg,
            waiverauth=WaiverAuth.WAIVABLE_BY_SECURITY,
            verb=Verb.FAILED,
            noun=file.localpath,
            arch=package.arch,
            file=file.localpath,
            details=details,
            remedy="Remove the file from the package or have the politics list updated.",
        )
        ok = False

    if ok:
        ctx.add_ok()
    return ok
