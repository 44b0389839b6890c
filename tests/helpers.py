"""Builders for in-memory builds, packages, files, and inspection contexts."""

from __future__ import annotations

import stat
from typing import Any

from buildgate.config import RunConfig
from buildgate.inspect.context import BuildContext, InspectionContext
from buildgate.model.build import Build, File, FileMeta, Package, Side
from buildgate.policy.rules import PolicyStore
from buildgate.results.ledger import Results

DEFAULT_HEADER: dict[str, Any] = {
    "license": "MIT",
    "vendor": "Example Corp",
    "buildhost": "builder01.build.example.com",
    "summary": "Demo tools",
    "description": "Command line tools for the demo project.",
}


def make_file(
    path: str,
    *,
    checksum: str | None = None,
    mode: int = stat.S_IFREG | 0o644,
    owner: str = "root",
    group: str = "root",
    size: int = 10,
    caps: str | None = None,
    idx: int = 0,
) -> File:
    """A payload file; regular files get a checksum derived from the path."""
    if checksum is None and stat.S_ISREG(mode):
        checksum = f"sha-{path}"
    return File(
        localpath=path,
        idx=idx,
        meta=FileMeta(mode=mode, owner=owner, group=group, size=size),
        checksum=checksum,
        caps=caps,
    )


def make_package(
    name: str,
    files: list[File] | None = None,
    *,
    version: str = "1.0",
    release: str = "1",
    arch: str = "x86_64",
    header: dict[str, Any] | None = None,
) -> Package:
    files = files if files is not None else []
    for position, file in enumerate(files):
        file.idx = position
    return Package(
        name=name,
        version=version,
        release=release,
        arch=arch,
        files=files,
        header_source=dict(DEFAULT_HEADER if header is None else header),
    )


def make_build(side: Side, packages: list[Package], *, version: str = "1.0") -> Build:
    return Build(side=side, name="demo", version=version, release="1", packages=packages)


def make_ctx(
    before: Build | None,
    after: Build,
    *,
    name: str = "test",
    policy: PolicyStore | None = None,
    config: RunConfig | None = None,
    move_detection: bool = True,
) -> InspectionContext:
    """An InspectionContext over an open BuildContext with a fresh ledger."""
    build = BuildContext.open(before, after, move_detection=move_detection)
    return InspectionContext(
        name=name,
        origin=0,
        build=build,
        policy=policy if policy is not None else PolicyStore(),
        config=config if config is not None else RunConfig(),
        results=Results(),
    )
