"""Package-level inspections: empty payloads, header metadata, licenses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from buildgate.results.ledger import Severity, Verb, WaiverAuth

if TYPE_CHECKING:
    from buildgate.inspect.context import InspectionContext
    from buildgate.model.build import Package
    from buildgate.model.header import Header

logger = logging.getLogger(__name__)


def _before_package(ctx: InspectionContext, package: Package) -> Package | None:
    for peer in ctx.peers.peers:
        if peer.after is package:
            return peer.before
    return None


def _before_header(ctx: InspectionContext, package: Package) -> Header | None:
    before = _before_package(ctx, package)
    return ctx.header(before) if before is not None else None


# ---------------------------------------------------------------------------
# emptypayload
# ---------------------------------------------------------------------------


def inspect_emptypayload(ctx: InspectionContext) -> bool:
    """Report packages without payload unless the policy expects them empty."""
    ok = True
    for package in ctx.after.packages:
        if not package.is_empty or package.name in ctx.policy.expected_empty:
            continue

        before = _before_package(ctx, package)
        if before is not None and not before.is_empty:
            msg = f"Package {package.name} on {package.arch} became empty"
            verb = Verb.CHANGED
        else:
            msg = f"Package {package.name} on {package.arch} has an empty payload"
            verb = Verb.FAILED
        ctx.add_result(
            Severity.VERIFY,
            msg,
            waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
            verb=verb,
            noun=package.name,
            arch=package.arch,
            remedy="Add the package name to expected_empty if the empty payload is intentional.",
        )
        ok = False

    if ok:
        ctx.add_ok()
    return ok


# ---------------------------------------------------------------------------
# metadata
# ---------------------------------------------------------------------------


def inspect_metadata(ctx: InspectionContext) -> bool:
    """Check vendor, build host, and descriptive text of every package header."""
    ok = True
    policy = ctx.policy
    for package in ctx.after.packages:
        header = ctx.header(package)
        if header is None:
            ok = False
            continue

        if policy.vendor is not None and header.vendor != policy.vendor:
            ctx.add_result(
                Severity.BAD,
                f"Package {package.name} on {package.arch} has vendor "
                f"'{header.vendor}', expected '{policy.vendor}'",
                verb=Verb.FAILED,
                noun=header.vendor or None,
                arch=package.arch,
                remedy="Set the Vendor tag in the build configuration.",
            )
            ok = False

        if policy.buildhost_subdomains and not any(
            header.buildhost.endswith(sub) for sub in policy.buildhost_subdomains
        ):
            ctx.add_result(
                Severity.BAD,
                f"Package {package.name} on {package.arch} was built on "
                f"'{header.buildhost}', outside the approved build subdomains",
                verb=Verb.FAILED,
                noun=header.buildhost or None,
                arch=package.arch,
                details=", ".join(policy.buildhost_subdomains),
                remedy="Rebuild the package in the approved build system.",
            )
            ok = False

        for field_name, text in (("summary", header.summary), ("description", header.description)):
            words = policy.find_badwords(text)
            if words:
                ctx.add_result(
                    Severity.BAD,
                    f"Package {package.name} on {package.arch} {field_name} contains "
                    f"prohibited words: {', '.join(words)}",
                    waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                    verb=Verb.FAILED,
                    noun=field_name,
                    arch=package.arch,
                    remedy=f"Reword the package {field_name}.",
                )
                ok = False

        before = _before_header(ctx, package)
        if before is None:
            continue
        for field_name, old, new in (
            ("vendor", before.vendor, header.vendor),
            ("summary", before.summary, header.summary),
        ):
            if old != new:
                ctx.add_result(
                    Severity.INFO,
                    f"Package {package.name} on {package.arch} {field_name} changed",
                    verb=Verb.CHANGED,
                    noun=field_name,
                    arch=package.arch,
                    details=f"'{old}' -> '{new}'",
                )

    if ok:
        ctx.add_ok()
    return ok


# ---------------------------------------------------------------------------
# license
# ---------------------------------------------------------------------------


def inspect_license(ctx: InspectionContext) -> bool:
    """Check the License tag of every package header."""
    ok = True
    for package in ctx.after.packages:
        header = ctx.header(package)
        if header is None:
            ok = False
            continue

        license_tag = header.license.strip()
        if not license_tag:
            ctx.add_result(
                Severity.BAD,
                f"Package {package.name} on {package.arch} has an empty License tag",
                verb=Verb.FAILED,
                noun="License",
                arch=package.arch,
                remedy="Set the License tag to the SPDX expression of the package.",
            )
            ok = False
            continue

        words = ctx.policy.find_badwords(license_tag)
        if words:
            ctx.add_result(
                Severity.BAD,
                f"License tag of {package.name} on {package.arch} contains prohibited "
                f"words: {', '.join(words)}",
                waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                verb=Verb.FAILED,
                noun=license_tag,
                arch=package.arch,
            )
            ok = False

        before = _before_header(ctx, package)
        if before is not None and before.license.strip() != license_tag:
            ctx.add_result(
                Severity.VERIFY,
                f"License of {package.name} on {package.arch} changed",
                waiverauth=WaiverAuth.WAIVABLE_BY_ANYONE,
                verb=Verb.CHANGED,
                noun=license_tag,
                arch=package.arch,
                details=f"'{before.license}' -> '{header.license}'",
                remedy="Confirm the license change is intended and approved.",
            )
            ok = False

    if ok:
        ctx.add_ok()
    return ok
