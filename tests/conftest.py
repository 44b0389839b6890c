"""Shared test fixtures for buildgate."""

from __future__ import annotations

import stat
from typing import TYPE_CHECKING

import pytest

from helpers import make_build, make_file, make_package

from buildgate.model.build import Side

if TYPE_CHECKING:
    from pathlib import Path

    from buildgate.model.build import Build


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_pair() -> tuple[Build, Build]:
    """Identical before/after builds with one binary and one config file."""

    def _side(side: Side) -> Build:
        return make_build(
            side,
            [
                make_package(
                    "demo",
                    [
                        make_file("/usr/bin/demo", mode=stat.S_IFREG | 0o755, size=2048),
                        make_file("/etc/demo.conf", size=120),
                    ],
                ),
                make_package("demo-doc", [make_file("/usr/share/doc/demo/README", size=300)]),
            ],
        )

    return _side(Side.BEFORE), _side(Side.AFTER)


@pytest.fixture()
def manifest_dir(tmp_path: Path) -> Path:
    """A before/after manifest pair plus a policy file on disk.

    Layout:
    - before.yml: demo 1.0 with /usr/bin/demo and /usr/lib64/libdemo.so.1
    - after.yml:  demo 1.1 with /usr/bin/demo and /usr/lib64/libdemo.so.2
    - root-after/usr/bin/demo extracted, checksum computed at load time
    - policy.yml: version 1 with a settings section
    """
    header = (
        "    header:\n"
        "      license: MIT\n"
        "      vendor: Example Corp\n"
        "      buildhost: builder01.build.example.com\n"
        "      summary: Demo tools\n"
        "      description: Command line tools.\n"
    )
    (tmp_path / "before.yml").write_text(
        "name: demo\n"
        "version: '1.0'\n"
        "release: '1'\n"
        "packages:\n"
        "  - name: demo\n"
        "    arch: x86_64\n"
        + header
        + "    files:\n"
        "      - path: /usr/bin/demo\n"
        "        mode: '0755'\n"
        "        size: 100\n"
        "        checksum: aaaa\n"
        "      - path: /usr/lib64/libdemo.so.1\n"
        "        mode: '0755'\n"
        "        size: 400\n"
        "        checksum: bbbb\n"
    )
    root = tmp_path / "root-after" / "usr" / "bin"
    root.mkdir(parents=True)
    (root / "demo").write_bytes(b"#!/bin/sh\necho demo\n")
    (tmp_path / "after.yml").write_text(
        "name: demo\n"
        "version: '1.1'\n"
        "release: '1'\n"
        "packages:\n"
        "  - name: demo\n"
        "    arch: x86_64\n"
        "    root: root-after\n"
        + header
        + "    files:\n"
        "      - path: /usr/bin/demo\n"
        "        mode: '0755'\n"
        "        size: 100\n"
        "      - path: /usr/lib64/libdemo.so.2\n"
        "        mode: '0755'\n"
        "        size: 420\n"
        "        checksum: cccc\n"
    )
    (tmp_path / "policy.yml").write_text(
        "version: 1\n"
        "vendor: Example Corp\n"
        "settings:\n"
        "  threshold: verify\n"
        "  jobs: 1\n"
    )
    return tmp_path
